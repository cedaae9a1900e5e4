import enum
from datetime import datetime

from betwise.extensions import db


class PaymentType(str, enum.Enum):
    DEPOSIT = "deposit"
    SUBSCRIPTION = "subscription"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not PaymentStatus.PENDING


class PaymentTransaction(db.Model):
    __tablename__ = "payment_transactions"

    # Caller-generated reference, e.g. DEP_12_1718000000000
    id = db.Column(db.String(64), primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("profiles.id"), nullable=False, index=True)

    type = db.Column(db.String(16), nullable=False)  # deposit | subscription
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    status = db.Column(db.String(16), nullable=False, default=PaymentStatus.PENDING.value, index=True)

    provider = db.Column(db.String(16), nullable=False, default="sim")
    # Gateway order id (PesaPal order_tracking_id / PayPal order id)
    transaction_id = db.Column(db.String(128), nullable=True, unique=True, index=True)

    phone_number = db.Column(db.String(32), nullable=False, default="")
    description = db.Column(db.String(255), nullable=False, default="")

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    @property
    def payment_type(self) -> PaymentType:
        return PaymentType(self.type)

    @property
    def payment_status(self) -> PaymentStatus:
        return PaymentStatus(self.status)

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": int(self.user_id),
            "type": self.type,
            "amount": float(self.amount or 0),
            "status": self.status,
            "provider": self.provider,
            "transaction_id": self.transaction_id,
            "phone_number": self.phone_number,
            "description": self.description,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
