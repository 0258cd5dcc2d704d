# neigh/services/billing_notifications.py
import logging
from flask import current_app
from .pdf_service import render_invoice_pdf
from .email_service import send_email

log = logging.getLogger(__name__)

def _app_link(path: str) -> str:
    base = (current_app.config.get("EXTERNAL_BASE_URL") or "").rstrip("/")
    return f"{base}{path}" if base else path

def _pdf(invoice, *, receipt=False):
    try:
        return render_invoice_pdf(invoice, receipt=receipt)
    except Exception as e:
        log.warning("PDF render for %s failed: %s", invoice.invoice_number, e)
        return None

def email_invoice_created(invoice) -> bool:
    client = invoice.client
    if not client or not client.email:
        return False

    kwargs = dict(
        to=client.email,
        subject=f"New invoice {invoice.invoice_number}",
        template="invoice_created_client.html",
        invoice=invoice,
        client=client,
        pay_link=_app_link(f"/invoices/{invoice.invoice_number}"),
    )
    pdf_bytes = _pdf(invoice)
    if pdf_bytes:
        # (filename, bytes, mimetype)
        kwargs["attachments"] = [(f"{invoice.invoice_number}.pdf", pdf_bytes, "application/pdf")]
    return bool(send_email(**kwargs))

def email_payment_received(payment) -> int:
    """Receipt to the payer plus a heads-up to every contractor paid. Returns
    how many emails went out."""
    sent = 0
    payer = payment.user
    for invoice in payment.invoices:
        if payer and payer.email:
            kwargs = dict(
                to=payer.email,
                subject=f"Payment received for {invoice.invoice_number}",
                template="payment_received_client.html",
                invoice=invoice,
                payment=payment,
                client=payer,
            )
            pdf_bytes = _pdf(invoice, receipt=True)
            if pdf_bytes:
                kwargs["attachments"] = [(f"receipt_{invoice.invoice_number}.pdf", pdf_bytes, "application/pdf")]
            sent += int(bool(send_email(**kwargs)))

        contractor = invoice.contractor
        if contractor and contractor.email:
            sent += int(bool(send_email(
                to=contractor.email,
                subject=f"Invoice {invoice.invoice_number} was paid",
                template="invoice_paid_contractor.html",
                invoice=invoice,
                payment=payment,
                contractor=contractor,
            )))
    return sent
