# neigh/blueprints/auth/routes.py
from datetime import datetime

from flask import jsonify, current_app
from flask_login import login_user, logout_user, login_required, current_user
from flask_wtf.csrf import generate_csrf
from ...services.email_service import send_email
from ...extensions import db
from ...models.user import User
from ...security import issue_token, verify_token, issue_socket_token
from ..utils import log_action
from . import auth_bp
from .forms import RegisterForm, LoginForm, ForgotPasswordForm, ResetPasswordForm, ProfileForm

RESET_SALT = "pwd-reset"
VERIFY_SALT = "email-verify"

# -----------------
# Utilities
# -----------------

def _app_link(path: str) -> str:
    base = (current_app.config.get("EXTERNAL_BASE_URL") or "").rstrip("/")
    return f"{base}{path}"


def send_password_reset_email(user: User, link: str):
    send_email(
        to=user.email,
        subject=f"Reset your {current_app.config.get('APP_NAME', 'Neigh')} password",
        template="password_reset.html",
        user=user,
        link=link,
    )


def send_verification_email(user: User):
    token = issue_token(user.id, VERIFY_SALT)
    send_email(
        to=user.email,
        subject="Confirm your email address",
        template="verify_email.html",
        user=user,
        link=_app_link(f"/verify-email/{token}"),
    )

# -----------------
# CSRF
# -----------------

@auth_bp.get("/auth/csrf")
def csrf_token():
    """Token for the X-CSRFToken header on state-changing requests."""
    return jsonify({"csrf_token": generate_csrf()})

# -----------------
# Register
# -----------------

@auth_bp.post("/auth/register")
def register():
    form = RegisterForm().validate_or_raise()
    user = User(
        name=form.name.data.strip(),
        email=form.email.data.strip().lower(),
        phone=(form.phone.data or "").strip() or None,
        role="user",
    )
    user.set_password(form.password.data)
    db.session.add(user)
    db.session.commit()
    log_action("user.register", user=user.id)

    send_verification_email(user)
    login_user(user)
    return jsonify({"user": user.to_dict(private=True)}), 201

# -----------------
# Login / Logout
# -----------------

@auth_bp.post("/auth/login")
def login():
    form = LoginForm().validate_or_raise()
    email = form.email.data.strip().lower()
    user = User.query.filter_by(email=email).first()
    if not user or not user.is_active or not user.check_password(form.password.data):
        return jsonify({"error": "Invalid email or password."}), 401

    login_user(user, remember=bool(form.remember.data))
    user.mark_login()
    db.session.commit()
    return jsonify({"user": user.to_dict(private=True)})


@auth_bp.post("/auth/logout")
@login_required
def logout():
    logout_user()
    return jsonify({"ok": True})


@auth_bp.get("/auth/me")
@login_required
def me():
    return jsonify({"user": current_user.to_dict(private=True)})


@auth_bp.get("/auth/socket-token")
@login_required
def socket_token():
    return jsonify({
        "token": issue_socket_token(current_user.id),
        "expires_in": int(current_app.config.get("SOCKET_TOKEN_MAX_AGE", 3600)),
    })

# -----------------
# Profile
# -----------------

@auth_bp.put("/users/me")
@login_required
def update_profile():
    form = ProfileForm().validate_or_raise()
    user = current_user
    if form.name.raw_data:
        user.name = form.name.data.strip()
    if form.phone.raw_data:
        user.phone = form.phone.data.strip() or None
    if form.image.raw_data:
        user.image = form.image.data.strip() or None
    if form.address.raw_data:
        user.address = form.address.data
    if form.payment_method.raw_data:
        user.payment_method = form.payment_method.data or None
    if form.language.raw_data:
        user.language = form.language.data or None
    db.session.commit()
    return jsonify({"user": user.to_dict(private=True)})


@auth_bp.get("/users/<int:user_id>")
@login_required
def user_profile(user_id):
    user = User.query.get_or_404(user_id)
    return jsonify({"user": user.to_dict()})

# -----------------
# Forgot / Reset Password
# -----------------

@auth_bp.post("/auth/forgot-password")
def forgot_password():
    form = ForgotPasswordForm().validate_or_raise()
    email = form.email.data.strip().lower()
    user = User.query.filter_by(email=email).first()
    # mask whether email exists
    if user:
        token = issue_token(user.id, RESET_SALT)
        send_password_reset_email(user, _app_link(f"/reset-password/{token}"))
    return jsonify({"message": "If that email is registered, you will receive a reset link shortly."})


@auth_bp.post("/auth/reset-password/<token>")
def reset_password(token):
    user_id = verify_token(token, RESET_SALT, max_age=60 * 60 * 24)
    if not user_id:
        return jsonify({"error": "The reset link is invalid or has expired."}), 400

    user = User.query.get_or_404(user_id)
    form = ResetPasswordForm().validate_or_raise()
    user.set_password(form.password.data)
    db.session.commit()
    log_action("user.password_reset", user=user.id)
    return jsonify({"message": "Your password has been reset. Please sign in."})

# -----------------
# Email verification
# -----------------

@auth_bp.post("/auth/verify-email")
@login_required
def resend_verification():
    if current_user.email_verified_at is None:
        send_verification_email(current_user)
    return jsonify({"ok": True})


@auth_bp.get("/auth/verify/<token>")
def verify_email(token):
    user_id = verify_token(token, VERIFY_SALT, max_age=60 * 60 * 24 * 3)
    if not user_id:
        return jsonify({"error": "Verification link invalid or expired."}), 400
    user = User.query.get_or_404(user_id)
    if user.email_verified_at is None:
        user.email_verified_at = datetime.utcnow()
        db.session.commit()
    return jsonify({"user": user.to_dict(private=True)})
