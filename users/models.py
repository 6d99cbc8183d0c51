from dataclasses import dataclass
from datetime import datetime
from extensions import db
from werkzeug.security import generate_password_hash, check_password_hash
from utils.patch import Patch, UNSET

ROLE_ADMIN = "admin"
ROLE_STAFF = "staff"
ROLES = (ROLE_ADMIN, ROLE_STAFF)


class User(db.Model):
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(80), unique=True, nullable=False)
    email = db.Column(db.String(120), unique=True, nullable=False)
    password_hash = db.Column(db.String(256), nullable=False)
    phone = db.Column(db.String(32), nullable=True)
    role = db.Column(db.String(20), nullable=False, default=ROLE_STAFF)   # admin / staff
    approved = db.Column(db.Boolean, nullable=False, default=False)     # admin approval gate

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    payments = db.relationship(
        "PaymentRecord", backref="user", lazy=True, cascade="all, delete-orphan"
    )

    def __repr__(self):
        return f'<User {self.username}>'

    @property
    def is_admin(self):
        return self.role == ROLE_ADMIN

    # --- Password helpers ---
    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        return check_password_hash(self.password_hash, password)

    def to_dict(self):
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "phone": self.phone,
            "role": self.role,
            "approved": self.approved,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


@dataclass
class UserPatch(Patch):
    """Partial update of a user; fields left UNSET are not touched."""
    username: object = UNSET
    email: object = UNSET
    phone: object = UNSET
    role: object = UNSET
    approved: object = UNSET

    @classmethod
    def from_json(cls, data):
        fields = {k: data[k] for k in ("username", "email", "phone", "role") if data.get(k) is not None}
        return cls(**fields)

