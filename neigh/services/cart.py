# neigh/services/cart.py
"""Per-user invoice cart: unpaid incoming invoices queued for one checkout."""
from __future__ import annotations

import logging

from flask_babel import gettext as _

from ..extensions import db
from ..models.cart import Cart, cart_invoice
from ..models.invoice import Invoice
from ..models.user import User
from .errors import Conflict, NotFound, PermissionDenied, ValidationFailed

log = logging.getLogger(__name__)


def get_cart(user: User) -> Cart:
    cart = Cart.query.filter_by(user_id=user.id).first()
    if cart is None:
        cart = Cart(user_id=user.id)
        db.session.add(cart)
        db.session.commit()
    return cart


def _invoice(invoice_id) -> Invoice:
    try:
        inv = Invoice.query.get(int(invoice_id))
    except (TypeError, ValueError):
        inv = None
    if inv is None:
        raise NotFound(_("Invoice not found"))
    return inv


def add_invoice(user: User, invoice_id) -> Cart:
    inv = _invoice(invoice_id)
    if inv.client_id != user.id:
        raise PermissionDenied(_("You can only add your own invoices to the cart"))
    if inv.is_paid:
        raise ValidationFailed(_("Invoice %(number)s is already paid", number=inv.invoice_number))

    cart = get_cart(user)
    if cart.has_invoice(inv.id):
        raise Conflict(_("Invoice %(number)s is already in your cart", number=inv.invoice_number))
    cart.invoices.append(inv)
    db.session.commit()
    log.info("invoice %s added to cart of user %s", inv.invoice_number, user.id)
    return cart


def remove_invoice(user: User, invoice_id) -> Cart:
    inv = _invoice(invoice_id)
    cart = get_cart(user)
    if not cart.has_invoice(inv.id):
        raise NotFound(_("Invoice %(number)s is not in your cart", number=inv.invoice_number))
    cart.invoices.remove(inv)
    db.session.commit()
    log.info("invoice %s removed from cart of user %s", inv.invoice_number, user.id)
    return cart


def drop_invoices(invoice_ids) -> int:
    """Take settled invoices out of every cart."""
    ids = list(invoice_ids or [])
    if not ids:
        return 0
    result = db.session.execute(cart_invoice.delete().where(cart_invoice.c.invoice_id.in_(ids)))
    db.session.commit()
    return result.rowcount or 0
