# neigh/services/storage_service.py
import uuid
from pathlib import Path
from werkzeug.utils import secure_filename
from flask import current_app
from flask_babel import gettext as _
from .errors import ValidationFailed, NotFound

def _ensure_base() -> Path:
    # Fallback to <instance>/uploads if UPLOAD_FOLDER not configured yet
    base = current_app.config.get("UPLOAD_FOLDER")
    if not base:
        base = Path(current_app.instance_path) / "uploads"
    else:
        base = Path(base)
    base.mkdir(parents=True, exist_ok=True)
    return base

def allowed_image(filename: str) -> bool:
    exts = current_app.config.get("ALLOWED_IMAGE_EXTENSIONS") or {"png", "jpg", "jpeg", "gif", "webp"}
    suffix = Path(filename).suffix.lower().lstrip(".")
    return bool(suffix) and suffix in exts

def save_image(file_storage, subdir: str = "") -> str:
    """
    Saves an image to UPLOAD_FOLDER / subdir / <uuid>.<ext>, returns the path
    relative to the upload base.
    """
    safe_name = secure_filename(getattr(file_storage, "filename", None) or "")
    if not safe_name:
        raise ValidationFailed(_("Empty filename"))
    if not allowed_image(safe_name):
        raise ValidationFailed(_("Only image uploads are allowed"))

    base = _ensure_base()
    target_dir = base / subdir if subdir else base
    target_dir.mkdir(parents=True, exist_ok=True)

    dest = target_dir / f"{uuid.uuid4().hex}{Path(safe_name).suffix.lower()}"
    file_storage.save(dest)
    return dest.relative_to(base).as_posix()

def resolve(relpath: str) -> Path:
    """Absolute path for a stored file; refuses anything outside the base."""
    base = _ensure_base().resolve()
    target = (base / (relpath or "")).resolve()
    if base not in target.parents or not target.is_file():
        raise NotFound(_("File not found"))
    return target
