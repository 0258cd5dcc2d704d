# neigh/services/invoicing.py
from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation

from flask import current_app
from flask_babel import gettext as _

from ..extensions import db
from ..models.assignment import TaskAssignment, STATUS_COMPLETED, STATUS_ACCEPTED
from ..models.invoice import Invoice, InvoiceItem
from ..models.user import User
from . import chat
from .billing_notifications import email_invoice_created
from .errors import Conflict, NotFound, PermissionDenied, ValidationFailed
from .workflow import CONTRACTOR, party_of

log = logging.getLogger(__name__)

CENTS = Decimal("0.01")
INVOICEABLE = (STATUS_COMPLETED, STATUS_ACCEPTED)


def _money(value) -> Decimal:
    return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)


def tax_rate() -> Decimal:
    try:
        return Decimal(str(current_app.config.get("INVOICE_TAX_RATE") or "0"))
    except InvalidOperation:
        log.warning("INVOICE_TAX_RATE is not a number, using 0")
        return Decimal("0")


def calc_totals(items, rate: Decimal | None = None) -> tuple[Decimal, Decimal, Decimal]:
    """Return ``(subtotal, tax, total)`` for ``[{"price": .., "quantity": ..}]``."""
    rate = Decimal("0") if rate is None else Decimal(str(rate))
    subtotal = sum((_money(it["price"]) * int(it.get("quantity", 1)) for it in items), Decimal("0"))
    subtotal = subtotal.quantize(CENTS, rounding=ROUND_HALF_UP)
    tax = (subtotal * rate).quantize(CENTS, rounding=ROUND_HALF_UP)
    return subtotal, tax, subtotal + tax


def _next_number() -> str:
    while True:
        number = f"INV-{datetime.utcnow():%Y%m%d}-{secrets.token_hex(3).upper()}"
        if not Invoice.query.filter_by(invoice_number=number).first():
            return number


def _clean_items(assignment: TaskAssignment, items) -> list[dict]:
    if not items:
        # default: bill the task at its listed price
        items = [{"name": assignment.task.name, "quantity": 1, "price": assignment.task.price}]
    cleaned = []
    for idx, it in enumerate(items):
        try:
            qty = int(it.get("quantity", 1))
            price = _money(it.get("price"))
            if not price.is_finite():
                raise InvalidOperation(price)
        except (TypeError, ValueError, InvalidOperation):
            raise ValidationFailed(_("Invalid invoice item"), details={"items": {idx: [_("Invalid quantity or price")]}})
        name = (it.get("name") or "").strip() or assignment.task.name
        if qty < 1 or price < 0:
            raise ValidationFailed(_("Invalid invoice item"),
                                   details={"items": {idx: [_("Quantity must be at least 1 and price not negative")]}})
        cleaned.append({"name": name[:255], "quantity": qty, "price": price,
                        "task_id": it.get("task_id") or assignment.task_id})
    return cleaned


def create_invoice(user: User, assignment: TaskAssignment, items=None) -> Invoice:
    if party_of(user, assignment) != CONTRACTOR:
        raise PermissionDenied(_("Only the assigned contractor can issue an invoice"))
    if assignment.status_name not in INVOICEABLE:
        raise ValidationFailed(_("Invoices can only be issued for completed tasks"))
    if Invoice.query.filter_by(assignment_id=assignment.id).first():
        raise Conflict(_("An invoice already exists for this task"))

    lines = _clean_items(assignment, items)
    subtotal, tax, total = calc_totals(lines, tax_rate())
    now = datetime.utcnow()

    inv = Invoice(
        invoice_number=_next_number(),
        assignment_id=assignment.id,
        contractor_id=assignment.contractor_id,
        client_id=assignment.client_id,
        subtotal=subtotal,
        tax=tax,
        total_price=total,
        status="unpaid",
        issued_at=now,
        due_at=now + timedelta(days=int(current_app.config.get("INVOICE_PAYMENT_TERMS_DAYS", 14))),
    )
    for ln in lines:
        inv.items.append(InvoiceItem(
            task_id=ln["task_id"],
            name=ln["name"],
            quantity=ln["quantity"],
            price=ln["price"],
            line_total=(ln["price"] * ln["quantity"]).quantize(CENTS),
        ))
    db.session.add(inv)
    db.session.commit()
    log.info("invoice %s issued for assignment %s total=%s", inv.invoice_number, assignment.id, total)

    chat.post_system_message(
        user, assignment,
        _("Invoice %(number)s issued for %(total)s", number=inv.invoice_number, total=total),
        chat.EVENT_INVOICE_CREATED,
        {"invoice_id": inv.id, "invoice_number": inv.invoice_number, "total": str(total)},
    )

    email_invoice_created(inv)
    return inv


# -----------------
# Queries
# -----------------

def _can_view(user: User, inv: Invoice) -> bool:
    return user.id in (inv.client_id, inv.contractor_id) or getattr(user, "is_admin", False)


def get_invoice_by_number(user: User, number: str) -> Invoice:
    inv = Invoice.query.filter_by(invoice_number=number).first()
    if not inv:
        raise NotFound(_("Invoice not found"))
    if not _can_view(user, inv):
        raise PermissionDenied(_("You cannot view this invoice"))
    return inv


def get_invoice(user: User, invoice_id: int) -> Invoice:
    inv = Invoice.query.get(invoice_id)
    if not inv:
        raise NotFound(_("Invoice not found"))
    if not _can_view(user, inv):
        raise PermissionDenied(_("You cannot view this invoice"))
    return inv


def incoming_invoices(user: User) -> list[Invoice]:
    """Invoices the user has to pay."""
    return Invoice.query.filter_by(client_id=user.id).order_by(Invoice.issued_at.desc()).all()


def outgoing_invoices(user: User) -> list[Invoice]:
    """Invoices the user issued as a contractor."""
    return Invoice.query.filter_by(contractor_id=user.id).order_by(Invoice.issued_at.desc()).all()


def invoices_by_ids(user: User, ids) -> list[Invoice]:
    ids = sorted({int(x) for x in (ids or [])})
    if not ids:
        return []
    rows = Invoice.query.filter(Invoice.id.in_(ids)).all()
    if len(rows) != len(ids):
        raise NotFound(_("Invoice not found"))
    for inv in rows:
        if not _can_view(user, inv):
            raise PermissionDenied(_("You cannot view this invoice"))
    return sorted(rows, key=lambda i: i.id)


def assignment_for_invoice(user: User, invoice_id: int) -> TaskAssignment:
    return get_invoice(user, invoice_id).assignment
