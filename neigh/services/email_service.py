# neigh/services/email_service.py
"""Transactional mail for Neigh (account links, invoices, receipts).

Callers have already committed whatever the mail is about, so nothing in
here raises: failures are logged and reported as ``False``.
"""
import logging
import mimetypes

from flask import current_app, render_template
from flask_mail import Message
from jinja2 import TemplateNotFound

from ..extensions import mail

log = logging.getLogger(__name__)


def _sender():
    cfg = current_app.config
    return cfg.get("MAIL_DEFAULT_SENDER") or cfg.get("MAIL_USERNAME")


def render_email(template: str, **ctx):
    """Return ``(html, text)``; the plain-text twin (``<name>.txt``) is optional."""
    ctx.setdefault("app_name", current_app.config.get("APP_NAME", "Neigh"))
    html = render_template(f"email/{template}", **ctx)
    try:
        text = render_template(f"email/{template.rsplit('.', 1)[0]}.txt", **ctx)
    except TemplateNotFound:
        text = None
    return html, text


def _attach_all(msg: Message, attachments):
    # (filename, bytes, mimetype or None)
    for filename, data, mimetype in attachments or []:
        mt = mimetype or mimetypes.guess_type(filename)[0] or "application/octet-stream"
        msg.attach(filename, mt, data)


def send_email(*, to, subject, template, attachments=None, **ctx) -> bool:
    recipients = [to] if isinstance(to, str) else [r for r in (to or []) if r]
    if not recipients:
        log.warning("mail %r skipped: no recipient", subject)
        return False
    sender = _sender()
    if not sender:
        log.error("mail %r skipped: MAIL_DEFAULT_SENDER is not set", subject)
        return False

    try:
        html, text = render_email(template, **ctx)
        msg = Message(subject=subject, recipients=recipients, sender=sender, html=html, body=text)
        _attach_all(msg, attachments)

        if current_app.config.get("MAIL_SUPPRESS_SEND"):
            log.info("mail suppressed: %s -> %s", subject, recipients)
            return True
        mail.send(msg)
    except Exception as e:
        log.exception("mail %r to %s failed: %s", subject, recipients, e)
        return False

    log.info("mail sent: %s -> %s", subject, recipients)
    return True
