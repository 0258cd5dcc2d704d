from datetime import datetime
from ..extensions import db


class Invoice(db.Model):
    __tablename__ = "invoice"

    id = db.Column(db.Integer, primary_key=True)
    invoice_number = db.Column(db.String(40), unique=True, nullable=False, index=True)

    # Exactly one assignment per invoice
    assignment_id = db.Column(db.Integer, db.ForeignKey("task_assignment.id"),
                              unique=True, nullable=False, index=True)
    contractor_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False, index=True)
    client_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False, index=True)
    payment_id = db.Column(db.Integer, db.ForeignKey("payment.id"), index=True)

    subtotal = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    tax = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total_price = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    # unpaid|paid
    status = db.Column(db.String(20), default="unpaid", nullable=False, index=True)
    issued_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    due_at = db.Column(db.DateTime)
    paid_at = db.Column(db.DateTime)

    assignment = db.relationship("TaskAssignment", backref=db.backref("invoice", uselist=False))
    contractor = db.relationship("User", foreign_keys=[contractor_id])
    client = db.relationship("User", foreign_keys=[client_id])
    payment = db.relationship("Payment", back_populates="invoices")

    items = db.relationship(
        "InvoiceItem",
        back_populates="invoice",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="InvoiceItem.id",
    )

    @property
    def is_paid(self) -> bool:
        return self.status == "paid"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_number": self.invoice_number,
            "assignment_id": self.assignment_id,
            "contractor": self.contractor.to_dict() if self.contractor else None,
            "client": self.client.to_dict() if self.client else None,
            "payment_id": self.payment_id,
            "subtotal": str(self.subtotal),
            "tax": str(self.tax),
            "total_price": str(self.total_price),
            "status": self.status,
            "issued_at": self.issued_at.isoformat() if self.issued_at else None,
            "due_at": self.due_at.isoformat() if self.due_at else None,
            "paid_at": self.paid_at.isoformat() if self.paid_at else None,
            "items": [it.to_dict() for it in self.items],
        }


class InvoiceItem(db.Model):
    __tablename__ = "invoice_item"

    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoice.id"), nullable=False, index=True)
    task_id = db.Column(db.Integer, db.ForeignKey("task.id"), index=True)

    name = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Integer, nullable=False, default=1)
    price = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    line_total = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    invoice = db.relationship("Invoice", back_populates="items")
    task = db.relationship("Task")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "task_id": self.task_id,
            "name": self.name,
            "quantity": self.quantity,
            "price": str(self.price),
            "line_total": str(self.line_total),
        }
