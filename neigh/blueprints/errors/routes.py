from flask import jsonify, request, current_app
from werkzeug.exceptions import HTTPException
from flask_wtf.csrf import CSRFError
from ...extensions import db
from ...services.errors import ServiceError
from . import errors_bp


def _error(message, code, **extra):
    return jsonify({"error": message, **extra}), code

# 401 – Unauthorized
@errors_bp.app_errorhandler(401)
def err_401(e):
    return _error("Authentication required", 401)

# 403 – Forbidden
@errors_bp.app_errorhandler(403)
def err_403(e):
    return _error("You do not have access to this resource", 403)

# 404 – Not Found
@errors_bp.app_errorhandler(404)
def err_404(e):
    return _error("Not found", 404, path=request.path)

# 405 – Method Not Allowed
@errors_bp.app_errorhandler(405)
def err_405(e):
    return _error("Method not allowed", 405)

# 413 – Payload Too Large (uploads)
@errors_bp.app_errorhandler(413)
def err_413(e):
    return _error("File is too large", 413)

# 429 – Too Many Requests
@errors_bp.app_errorhandler(429)
def err_429(e):
    return _error("Too many requests", 429)

# CSRF – treated as 400 Bad Request
@errors_bp.app_errorhandler(CSRFError)
def err_csrf(e):
    return _error(e.description or "CSRF token missing or invalid", 400)

# Domain errors raised by services
@errors_bp.app_errorhandler(ServiceError)
def err_service(e: ServiceError):
    if e.status_code >= 500:
        current_app.logger.error("%s on %s: %s", type(e).__name__, request.path, e.message)
    return jsonify(e.to_dict()), e.status_code

# 500 – Internal Server Error
@errors_bp.app_errorhandler(500)
def err_500(e):
    # if a DB action caused this, rollback so app isn’t stuck in bad transaction
    db.session.rollback()
    return _error("Internal server error", 500)

# Fallback for uncaught HTTPException
@errors_bp.app_errorhandler(HTTPException)
def err_http(e: HTTPException):
    return _error(e.description or e.name, e.code or 500)

# Last-resort: any other Exception
@errors_bp.app_errorhandler(Exception)
def err_unexpected(e):
    db.session.rollback()
    current_app.logger.exception("Unhandled error on %s %s", request.method, request.path)
    # Don’t leak internals
    return _error("Internal server error", 500)
