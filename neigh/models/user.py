# neigh/models/user.py
from datetime import datetime
from werkzeug.security import generate_password_hash, check_password_hash
from flask_login import UserMixin
from ..extensions import db


class User(UserMixin, db.Model):
    __tablename__ = "user"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    phone = db.Column(db.String(50))
    image = db.Column(db.String(500))
    address = db.Column(db.JSON)  # {"street", "city", "postal_code", "country"}

    password_hash = db.Column(db.String(255))

    # user|admin ; client/contractor is decided per assignment
    role = db.Column(db.String(20), nullable=False, default="user", index=True)

    payment_method = db.Column(db.String(20))  # STRIPE|PAYPAL
    language = db.Column(db.String(10))

    # Rating aggregates, recomputed whenever a review lands
    client_rating = db.Column(db.Float, default=0.0)
    contractor_rating = db.Column(db.Float, default=0.0)
    num_reviews = db.Column(db.Integer, default=0)

    email_verified_at = db.Column(db.DateTime)
    # soft delete: the account is closed but its marketplace history stays
    deleted_at = db.Column(db.DateTime, index=True)
    last_login_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # --- Auth helpers ---
    def set_password(self, password: str):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        if not self.password_hash:
            return False
        return check_password_hash(self.password_hash, password)

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    @property
    def is_active(self) -> bool:
        return self.deleted_at is None

    def mark_login(self):
        self.last_login_at = datetime.utcnow()

    def to_dict(self, private: bool = False) -> dict:
        data = {
            "id": self.id,
            "name": self.name,
            "image": self.image,
            "role": self.role,
            "client_rating": round(self.client_rating or 0.0, 2),
            "contractor_rating": round(self.contractor_rating or 0.0, 2),
            "num_reviews": self.num_reviews or 0,
        }
        if private:
            data.update({
                "email": self.email,
                "phone": self.phone,
                "address": self.address,
                "payment_method": self.payment_method,
                "language": self.language,
                "email_verified": self.email_verified_at is not None,
                "deleted": self.deleted_at is not None,
            })
        return data
