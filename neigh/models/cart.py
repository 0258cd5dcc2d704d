from datetime import datetime
from decimal import Decimal

from ..extensions import db


cart_invoice = db.Table(
    "cart_invoice",
    db.Column("cart_id", db.Integer, db.ForeignKey("cart.id"), primary_key=True),
    db.Column("invoice_id", db.Integer, db.ForeignKey("invoice.id"), primary_key=True),
)


class Cart(db.Model):
    """Invoices a client has set aside to pay together."""
    __tablename__ = "cart"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("user.id"), unique=True, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = db.relationship("User", backref=db.backref("cart", uselist=False))
    invoices = db.relationship("Invoice", secondary=cart_invoice, lazy="selectin", order_by="Invoice.id")

    @property
    def total_price(self) -> Decimal:
        # derived, never stored
        return sum((Decimal(str(inv.total_price)) for inv in self.invoices), Decimal("0.00"))

    def has_invoice(self, invoice_id: int) -> bool:
        return any(inv.id == invoice_id for inv in self.invoices)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "invoices": [inv.to_dict() for inv in self.invoices],
            "invoice_ids": [inv.id for inv in self.invoices],
            "total_price": str(self.total_price),
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
