from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from betwise import create_app
from betwise.extensions import db
from betwise.models import Game, League, PaymentTransaction, Profile, Team, UserRole
from betwise.payments.gateway import GatewayOrder, PENDING
from betwise.utils.jwt_utils import create_access_token


class FakeGateway:
    """Records calls; status and failures are set per test."""

    name = "fake"

    def __init__(self):
        self.status = PENDING
        self.submit_error = None
        self.query_error = None
        self.submitted = []
        self.queries = []

    def submit_order(self, *, amount, currency, payer, reference, description, callback_url):
        self.submitted.append({
            "amount": amount,
            "currency": currency,
            "payer": payer,
            "reference": reference,
            "callback_url": callback_url,
        })
        if self.submit_error is not None:
            raise self.submit_error
        return GatewayOrder(order_id=f"ORD-{reference}", checkout_url=f"https://checkout.test/{reference}")

    def query_order_status(self, order_id):
        self.queries.append(order_id)
        if self.query_error is not None:
            raise self.query_error
        return self.status


@pytest.fixture
def app():
    app = create_app({
        "TESTING": True,
        "BETWISE_ENV": "test",
        "SECRET_KEY": "test-secret-key-0123456789",
        "SQLALCHEMY_DATABASE_URI": "sqlite://",
        "PAYMENT_PROVIDER": "sim",
        "PUBLIC_BASE_URL": "https://api.betwise.test",
        "PAYMENT_RESULT_URL": "https://betwise.test/payment/result",
    })
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def gateway(app):
    fake = FakeGateway()
    app.extensions["payment_gateway"] = fake
    return fake


@pytest.fixture
def make_user(app):
    counter = {"n": 0}

    def _make(balance="0.00", admin=False, access_until=None):
        counter["n"] += 1
        with app.app_context():
            profile = Profile(
                email=f"punter{counter['n']}@betwise.test",
                username=f"punter{counter['n']}",
                wallet_balance=Decimal(balance),
                daily_access_granted_until=access_until,
            )
            profile.set_password("secret123")
            profile.roles.append(UserRole(role="user"))
            if admin:
                profile.roles.append(UserRole(role="admin"))
            db.session.add(profile)
            db.session.commit()
            return profile.id

    return _make


@pytest.fixture
def auth_headers(app):
    def _headers(user_id, **extra):
        with app.app_context():
            token = create_access_token(user_id)
        return {"Authorization": f"Bearer {token}", **extra}

    return _headers


@pytest.fixture
def make_game(app):
    def _make(odds=("2.50", "3.10", "2.80"), status="upcoming"):
        with app.app_context():
            league = League(name="Kenyan Premier League", country="Kenya")
            db.session.add(league)
            db.session.flush()
            home = Team(name="Gor Mahia", league_id=league.id)
            away = Team(name="AFC Leopards", league_id=league.id)
            db.session.add_all([home, away])
            db.session.flush()
            game = Game(
                league_id=league.id,
                home_team_id=home.id,
                away_team_id=away.id,
                match_date=datetime.utcnow() + timedelta(days=1),
                odds_home_win=Decimal(odds[0]),
                odds_draw=Decimal(odds[1]),
                odds_away_win=Decimal(odds[2]),
                status=status,
                result="pending",
            )
            db.session.add(game)
            db.session.commit()
            return game.id

    return _make


@pytest.fixture
def make_payment(app):
    counter = {"n": 0}

    def _make(user_id, kind="deposit", amount="500.00", status="pending", age_minutes=0):
        counter["n"] += 1
        reference = f"{'DEP' if kind == 'deposit' else 'SUB'}_{user_id}_{counter['n']}_test"
        with app.app_context():
            db.session.add(PaymentTransaction(
                id=reference,
                user_id=user_id,
                type=kind,
                amount=Decimal(amount),
                status=status,
                provider="fake",
                transaction_id=f"ORD-{reference}",
                phone_number="254712345678",
                description="test payment",
                created_at=datetime.utcnow() - timedelta(minutes=age_minutes),
            ))
            db.session.commit()
        return reference

    return _make


def balance_of(app, user_id) -> Decimal:
    with app.app_context():
        return Decimal(db.session.get(Profile, user_id).wallet_balance)


def payment_status_of(app, reference) -> str:
    with app.app_context():
        return db.session.get(PaymentTransaction, reference).status
