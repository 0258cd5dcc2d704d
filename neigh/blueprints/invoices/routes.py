# neigh/blueprints/invoices/routes.py
from io import BytesIO

from flask import jsonify, send_file
from flask_login import login_required, current_user

from ...services import invoicing, workflow
from ...services.pdf_service import render_invoice_pdf
from . import invoices_bp
from .forms import InvoiceForm, InvoiceBatchForm


@invoices_bp.post("/invoices")
@login_required
def create():
    form = InvoiceForm().validate_or_raise()
    assignment = workflow.get_assignment(current_user, form.assignment_id.data)
    inv = invoicing.create_invoice(current_user, assignment, form.items.data)
    return jsonify({"invoice": inv.to_dict()}), 201


@invoices_bp.get("/invoices/incoming")
@login_required
def incoming():
    return jsonify({"items": [i.to_dict() for i in invoicing.incoming_invoices(current_user)]})


@invoices_bp.get("/invoices/outgoing")
@login_required
def outgoing():
    return jsonify({"items": [i.to_dict() for i in invoicing.outgoing_invoices(current_user)]})


@invoices_bp.post("/invoices/batch")
@login_required
def batch():
    form = InvoiceBatchForm().validate_or_raise()
    rows = invoicing.invoices_by_ids(current_user, form.ids.data)
    return jsonify({"items": [i.to_dict() for i in rows]})


@invoices_bp.get("/invoices/<string:number>")
@login_required
def detail(number):
    return jsonify({"invoice": invoicing.get_invoice_by_number(current_user, number).to_dict()})


@invoices_bp.get("/invoices/<string:number>/download")
@login_required
def download(number):
    inv = invoicing.get_invoice_by_number(current_user, number)
    pdf = render_invoice_pdf(inv, receipt=inv.is_paid)
    return send_file(
        BytesIO(pdf),
        mimetype="application/pdf",
        as_attachment=True,
        download_name=f"{inv.invoice_number}.pdf",
    )
