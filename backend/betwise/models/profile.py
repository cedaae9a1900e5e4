from datetime import datetime
from decimal import Decimal

from flask_login import UserMixin
from werkzeug.security import generate_password_hash, check_password_hash

from betwise.extensions import db


class Profile(db.Model, UserMixin):
    __tablename__ = "profiles"

    id = db.Column(db.Integer, primary_key=True)

    username = db.Column(db.String(120), nullable=False, default="")
    email = db.Column(db.String(255), unique=True, index=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)

    # Only settlement and bet placement write this column, always via an UPDATE expression.
    wallet_balance = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal("0.00"))

    daily_access_granted_until = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    roles = db.relationship("UserRole", backref="profile", lazy="select", cascade="all, delete-orphan")

    def set_password(self, raw_password: str) -> None:
        self.password_hash = generate_password_hash(raw_password)

    def check_password(self, raw_password: str) -> bool:
        return check_password_hash(self.password_hash, raw_password)

    @property
    def is_admin(self) -> bool:
        return any(r.role == "admin" for r in self.roles)

    def has_daily_access(self, now: datetime | None = None) -> bool:
        until = self.daily_access_granted_until
        if until is None:
            return False
        return (now or datetime.utcnow()) < until

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "wallet_balance": float(self.wallet_balance or 0),
            "daily_access_granted_until": self.daily_access_granted_until.isoformat() if self.daily_access_granted_until else None,
            "has_daily_access": self.has_daily_access(),
            "is_admin": self.is_admin,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class UserRole(db.Model):
    __tablename__ = "user_roles"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("profiles.id"), nullable=False, index=True)
    role = db.Column(db.String(16), nullable=False, default="user")  # admin | user

    __table_args__ = (db.UniqueConstraint("user_id", "role", name="uq_user_roles_user_role"),)
