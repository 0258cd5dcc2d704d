from datetime import datetime
from flask import jsonify, current_app
from ...extensions import db
from . import main_bp


# ---- Tiny JSON health route (DB ping + version) ----
@main_bp.get("/health")
def health():
    ok_db = True
    try:
        db.session.execute(db.text("SELECT 1"))
    except Exception as e:
        current_app.logger.error(f"DB health failed: {e}")
        db.session.rollback()
        ok_db = False

    payload = {
        "service": "neigh",
        "version": current_app.config.get("APP_VERSION"),
        "time_utc": datetime.utcnow().isoformat() + "Z",
        "checks": {"database": "ok" if ok_db else "fail"},
    }
    return jsonify(payload), (200 if ok_db else 503)
