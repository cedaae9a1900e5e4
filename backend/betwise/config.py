import os


def _normalize_database_url(url: str) -> str:
    # Render/Heroku sometimes provide postgres:// which SQLAlchemy expects as postgresql://
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql://", 1)
    return url


def _env_float(name: str, default: float) -> float:
    raw = (os.getenv(name) or "").strip()
    try:
        return float(raw) if raw else float(default)
    except ValueError:
        return float(default)


def _env_int(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    try:
        return int(raw) if raw else int(default)
    except ValueError:
        return int(default)


class Config:
    # Base directory of the backend (one level above this `betwise` package)
    BACKEND_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
    INSTANCE_DIR = os.path.join(BACKEND_DIR, 'instance')

    BETWISE_ENV = (os.getenv("BETWISE_ENV", "dev") or "dev").strip().lower()
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret")
    JWT_ACCESS_TTL_SECONDS = _env_int("JWT_ACCESS_TTL_SECONDS", 60 * 60 * 24 * 7)

    _default_sqlite_path = os.path.join(INSTANCE_DIR, 'betwise.db').replace('\\', '/')
    _db_url = os.getenv("DATABASE_URL") or os.getenv("SQLALCHEMY_DATABASE_URI") or f"sqlite:///{_default_sqlite_path}"
    SQLALCHEMY_DATABASE_URI = _normalize_database_url(_db_url)
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # CORS: comma-separated origins for web builds
    ALLOWED_ORIGINS = os.getenv("ALLOWED_ORIGINS", "*")

    # Money rules (KES)
    CURRENCY = "KES"
    MIN_DEPOSIT = _env_float("MIN_DEPOSIT", 100)
    SUBSCRIPTION_FEE = _env_float("SUBSCRIPTION_FEE", 500)
    MIN_STAKE = _env_float("MIN_STAKE", 10)
    # Upper bound for deposits and stakes; never above what the money columns hold
    MAX_AMOUNT = _env_float("MAX_AMOUNT", 9999999999.99)

    # Daily access expires at local midnight in this zone
    BETWISE_TIMEZONE = os.getenv("BETWISE_TIMEZONE", "Africa/Nairobi")

    # Gateway selection: pesapal | paypal | sim
    PAYMENT_PROVIDER = (os.getenv("PAYMENT_PROVIDER", "sim") or "sim").strip().lower()
    GATEWAY_TIMEOUT = _env_float("GATEWAY_TIMEOUT", 20)
    GATEWAY_RETRIES = _env_int("GATEWAY_RETRIES", 2)

    PESAPAL_ENVIRONMENT = os.getenv("PESAPAL_ENVIRONMENT", "sandbox")
    PESAPAL_API_BASE_URL = os.getenv("PESAPAL_API_BASE_URL", "")
    PESAPAL_CONSUMER_KEY = os.getenv("PESAPAL_CONSUMER_KEY", "")
    PESAPAL_CONSUMER_SECRET = os.getenv("PESAPAL_CONSUMER_SECRET", "")
    PESAPAL_IPN_ID = os.getenv("PESAPAL_IPN_ID", "")

    PAYPAL_ENVIRONMENT = os.getenv("PAYPAL_ENVIRONMENT", "sandbox")
    PAYPAL_CLIENT_ID = os.getenv("PAYPAL_CLIENT_ID", "")
    PAYPAL_SECRET = os.getenv("PAYPAL_SECRET", "")

    SIM_GATEWAY_DELAY = _env_float("SIM_GATEWAY_DELAY", 0)
    SIM_GATEWAY_OUTCOME = os.getenv("SIM_GATEWAY_OUTCOME", "completed")

    # Where the gateway sends the browser back to, and where we send it after
    PUBLIC_BASE_URL = os.getenv("PUBLIC_BASE_URL", "http://localhost:5000")
    PAYMENT_RESULT_URL = os.getenv("PAYMENT_RESULT_URL", "http://localhost:5173/payment/result")

    # Pending payments younger than this are left alone by the reconciler
    RECONCILE_MIN_AGE_MINUTES = _env_int("RECONCILE_MIN_AGE_MINUTES", 5)
