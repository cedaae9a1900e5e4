from .profile import Profile, UserRole  # noqa: F401
from .game import League, Team, Game, OUTCOMES, GAME_STATUSES  # noqa: F401
from .bet import Bet  # noqa: F401
from .transaction import Transaction, LEDGER_TYPES, CREDIT_TYPES, DEBIT_TYPES  # noqa: F401
from .payment_transaction import PaymentTransaction, PaymentType, PaymentStatus  # noqa: F401

from .audit_log import AuditLog  # noqa: F401

from .idempotency_key import IdempotencyKey  # noqa: F401
