# neigh/security.py
from functools import wraps
from typing import Optional

from flask import abort, current_app
from flask_login import current_user
from itsdangerous import URLSafeTimedSerializer, BadSignature, SignatureExpired


def roles_required(*roles):
    """Gate a view on ``current_user.role``; use below ``login_required``."""
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            if not current_user.is_authenticated:
                abort(401)
            if current_user.role not in roles:
                abort(403)
            return fn(*args, **kwargs)
        return wrapper
    return decorator


# -----------------
# Signed tokens
# -----------------

def _ts(salt: str) -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(secret_key=current_app.config.get("SECRET_KEY"), salt=salt)


def issue_token(user_id: int, salt: str) -> str:
    return _ts(salt).dumps({"uid": user_id})


def verify_token(token: str, salt: str, max_age: int) -> Optional[int]:
    try:
        data = _ts(salt).loads(token, max_age=max_age)
        return int(data.get("uid"))
    except (BadSignature, SignatureExpired, ValueError, TypeError, AttributeError):
        return None


def issue_socket_token(user_id: int) -> str:
    return issue_token(user_id, current_app.config.get("SOCKET_TOKEN_SALT", "socket-auth"))


def verify_socket_token(token: str) -> Optional[int]:
    return verify_token(
        token,
        current_app.config.get("SOCKET_TOKEN_SALT", "socket-auth"),
        int(current_app.config.get("SOCKET_TOKEN_MAX_AGE", 3600)),
    )
