from datetime import datetime

from betwise.extensions import db

LEDGER_TYPES = ("deposit", "withdrawal", "bet", "subscription", "bet_won")

# Ledger types that move money into / out of the wallet. Subscriptions are paid
# at the gateway and never touch the balance.
CREDIT_TYPES = ("deposit", "bet_won")
DEBIT_TYPES = ("bet", "withdrawal")


class Transaction(db.Model):
    """Append-only ledger entry; written next to every wallet mutation."""

    __tablename__ = "transactions"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("profiles.id"), nullable=False, index=True)

    type = db.Column(db.String(16), nullable=False)
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    description = db.Column(db.String(255), nullable=False, default="")
    reference = db.Column(db.String(80), nullable=True, index=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def to_dict(self):
        return {
            "id": int(self.id),
            "user_id": int(self.user_id),
            "type": self.type,
            "amount": float(self.amount or 0),
            "description": self.description or "",
            "reference": self.reference or "",
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
