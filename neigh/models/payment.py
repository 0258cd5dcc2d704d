from datetime import datetime
from ..extensions import db


class Payment(db.Model):
    __tablename__ = "payment"
    __table_args__ = (
        db.UniqueConstraint("user_id", "idempotency_key", name="uq_payment_user_idempotency"),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False, index=True)

    amount = db.Column(db.Numeric(12, 2), nullable=False)
    currency = db.Column(db.String(10), default="USD")
    payment_method = db.Column(db.String(20), nullable=False)  # STRIPE|PAYPAL

    # pending|paid|cancelled|refund_due (gateway settled after a cancel)
    status = db.Column(db.String(20), default="pending", nullable=False, index=True)
    is_paid = db.Column(db.Boolean, default=False, nullable=False)
    paid_at = db.Column(db.DateTime)

    # PaymentIntent id (Stripe) or order id (PayPal)
    gateway_ref = db.Column(db.String(120), index=True)
    payment_result = db.Column(db.JSON)  # raw gateway payloads for auditing

    idempotency_key = db.Column(db.String(120), nullable=False)
    # sorted invoice ids the payment was opened for; survives a cancel
    invoice_ids = db.Column(db.JSON, nullable=False, default=list)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = db.relationship("User", backref=db.backref("payments", lazy="dynamic"))
    invoices = db.relationship("Invoice", back_populates="payment", lazy="selectin")

    @property
    def is_pending(self) -> bool:
        return self.status == "pending"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "amount": str(self.amount),
            "currency": self.currency,
            "payment_method": self.payment_method,
            "status": self.status,
            "is_paid": bool(self.is_paid),
            "paid_at": self.paid_at.isoformat() if self.paid_at else None,
            "gateway_ref": self.gateway_ref,
            "invoice_ids": list(self.invoice_ids or []),
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "invoices": [
                {"id": inv.id, "invoice_number": inv.invoice_number,
                 "total_price": str(inv.total_price), "status": inv.status}
                for inv in self.invoices
            ],
        }
