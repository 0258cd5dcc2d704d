import os
from pathlib import Path
import logging
from logging.handlers import RotatingFileHandler
import click
from flask import Flask, jsonify, request, session, has_request_context
from .extensions import db, migrate, login_manager, csrf, mail, babel, socketio
from .config import Config
from .models.user import User
from flask_login import current_user  # for locale selector

# Blueprints
from .blueprints.errors import errors_bp
from .blueprints.auth import auth_bp
from .blueprints.main import main_bp
from .blueprints.tasks import tasks_bp
from .blueprints.assignments import assignments_bp
from .blueprints.invoices import invoices_bp
from .blueprints.payments import payments_bp
from .blueprints.messages import messages_bp
from .blueprints.admin import admin_bp

# Socket.IO handlers must be declared before socketio.init_app so every app gets them
from . import sockets  # noqa: E402,F401


# Optional: Sentry
def _init_sentry(app):
    dsn = app.config.get("SENTRY_DSN")
    if not dsn:
        return
    try:
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration
        from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

        sentry_sdk.init(
            dsn=dsn,
            integrations=[FlaskIntegration(), SqlalchemyIntegration()],
            traces_sample_rate=app.config.get("SENTRY_TRACES_SAMPLE_RATE", 0.0),
            environment=os.getenv("ENV", "development"),
            release=os.getenv("GIT_COMMIT", None),
            send_default_pii=False,
        )
        app.logger.info("Sentry initialized.")
    except Exception as e:
        app.logger.warning(f"Sentry init failed: {e}")

def _init_logging(app):
    level_name = app.config.get("LOG_LEVEL", "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)
    app.logger.setLevel(level)

    # Formatter: text or JSON
    if app.config.get("LOG_JSON", False):
        import json_log_formatter
        formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("[%(asctime)s] %(levelname)s in %(module)s: %(message)s")

    # app.logger is the "neigh" logger, so service loggers ("neigh.services.*") propagate here
    for old in list(app.logger.handlers):
        app.logger.removeHandler(old)

    handlers = []
    if app.config.get("LOG_TO_FILE", True):
        log_dir = Path(app.config.get("LOG_DIR", "logs"))
        log_dir.mkdir(parents=True, exist_ok=True)
        # Rotating file handler (5MB x 5)
        handlers.append(RotatingFileHandler(
            log_dir / app.config.get("LOG_FILENAME", "neigh.log"),
            maxBytes=5_000_000, backupCount=5, encoding="utf-8",
        ))
    # Stream to stdout as well (useful on dev/heroku/docker)
    handlers.append(logging.StreamHandler())

    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        app.logger.addHandler(handler)

    app.logger.info("Logging initialized.")

def create_app(config_object=None):
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config_object or Config)

    # --- base config defaults ---
    app.config.setdefault("SECRET_KEY", "change-me")
    app.config.setdefault(
        "SQLALCHEMY_DATABASE_URI",
        "sqlite:///" + os.path.join(app.instance_path, "neigh.db"),
    )
    app.config.setdefault("SQLALCHEMY_TRACK_MODIFICATIONS", False)

    # i18n defaults (Babel)
    app.config.setdefault("BABEL_DEFAULT_LOCALE", "en")
    app.config.setdefault("BABEL_DEFAULT_TIMEZONE", "UTC")
    app.config.setdefault("LANGUAGES", ["en", "fr", "de", "es"])

    # ensure instance & uploads
    Path(app.instance_path).mkdir(parents=True, exist_ok=True)
    default_upload_dir = Path(app.instance_path) / "uploads"
    app.config.setdefault("UPLOAD_FOLDER", str(default_upload_dir))
    app.config.setdefault("MAX_CONTENT_LENGTH", 10 * 1024 * 1024)
    app.config.setdefault("ALLOWED_IMAGE_EXTENSIONS", {"png", "jpg", "jpeg", "gif", "webp"})
    app.config.setdefault("PAYMENT_METHODS", ["STRIPE", "PAYPAL"])
    app.config.setdefault("PAGE_SIZE", 20)

    # Logging must come before extensions/blueprints so errors during setup are captured
    _init_logging(app)
    _init_sentry(app)

    # Extensions
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    csrf.init_app(app)
    mail.init_app(app)
    origins = app.config.get("SOCKETIO_CORS_ORIGINS") or "*"
    socketio.init_app(
        app,
        message_queue=app.config.get("SOCKETIO_MESSAGE_QUEUE") or None,
        cors_allowed_origins="*" if origins == ["*"] else origins,
        path=app.config.get("SOCKETIO_PATH", "/api/socketio"),
    )

    # ---- Babel init (locale from session/user/Accept-Language) ----
    def _select_locale():
        if not has_request_context():
            return None  # default locale for CLI and background work
        return (
            session.get("lang")
            or (getattr(current_user, "language", None) if getattr(current_user, "is_authenticated", False) else None)
            or request.accept_languages.best_match(app.config.get("LANGUAGES", ["en"]))
            or "en"
        )
    babel.init_app(app, locale_selector=_select_locale)
    # ---------------------------------------------------------------

    @login_manager.user_loader
    def load_user(user_id):
        user = User.query.get(int(user_id))
        return user if user is not None and user.is_active else None

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({"error": "Authentication required"}), 401

    # Blueprints
    app.register_blueprint(errors_bp)  # error handlers
    app.register_blueprint(main_bp, url_prefix="/api")
    app.register_blueprint(auth_bp, url_prefix="/api")
    app.register_blueprint(tasks_bp, url_prefix="/api")
    app.register_blueprint(assignments_bp, url_prefix="/api")
    app.register_blueprint(invoices_bp, url_prefix="/api")
    app.register_blueprint(payments_bp, url_prefix="/api")
    app.register_blueprint(messages_bp, url_prefix="/api")
    app.register_blueprint(admin_bp, url_prefix="/api/admin")

    @app.cli.command("seed")
    def seed_command():
        """Load assignment statuses and default categories (idempotent)."""
        from .seed import seed_all
        result = seed_all()
        click.echo(f"Seeded {result['statuses']} statuses and {result['categories']} categories.")

    return app
