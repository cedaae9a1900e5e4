import json
from decimal import Decimal

from betwise.extensions import db
from betwise.jobs.payment_reconciler import reconcile_pending_payments
from betwise.jobs.wallet_reconciler import reconcile_wallets
from betwise.models import AuditLog, Profile
from betwise.payments.gateway import COMPLETED, FAILED
from betwise.utils.wallets import credit_wallet

from conftest import balance_of, payment_status_of


def test_poller_settles_stale_pending_payments(app, gateway, make_user, make_payment):
    uid = make_user()
    stale = make_payment(uid, amount="400.00", age_minutes=30)
    fresh = make_payment(uid, amount="700.00", age_minutes=0)
    gateway.status = COMPLETED

    with app.app_context():
        res = reconcile_pending_payments()

    assert (res["checked"], res["completed"], res["errors"]) == (1, 1, 0)
    assert gateway.queries == [f"ORD-{stale}"]
    assert payment_status_of(app, stale) == "completed"
    assert payment_status_of(app, fresh) == "pending"
    assert balance_of(app, uid) == Decimal("400.00")


def test_poller_is_safe_to_rerun(app, gateway, make_user, make_payment):
    uid = make_user()
    make_payment(uid, amount="400.00", age_minutes=30)
    gateway.status = COMPLETED

    with app.app_context():
        reconcile_pending_payments()
        again = reconcile_pending_payments()

    assert again["checked"] == 0
    assert balance_of(app, uid) == Decimal("400.00")


def test_poller_counts_failed_and_still_pending(app, gateway, make_user, make_payment):
    uid = make_user()
    make_payment(uid, age_minutes=10)
    gateway.status = FAILED

    with app.app_context():
        res = reconcile_pending_payments(older_than_minutes=5)
    assert res["failed"] == 1

    make_payment(uid, age_minutes=10)
    gateway.status = "pending"
    with app.app_context():
        res = reconcile_pending_payments(older_than_minutes=5)
    assert (res["checked"], res["pending"]) == (1, 1)


def test_admin_can_trigger_payment_reconcile(client, gateway, make_user, make_payment, auth_headers):
    uid = make_user()
    make_payment(uid, age_minutes=1)
    gateway.status = COMPLETED
    admin = auth_headers(make_user(admin=True))

    default_age = client.post("/api/admin/payments/reconcile", json={}, headers=admin).get_json()
    forced = client.post("/api/admin/payments/reconcile", json={"olderThanMinutes": 0}, headers=admin).get_json()

    assert default_age["checked"] == 0
    assert forced["completed"] == 1


def test_wallet_reconciler_flags_balance_without_ledger(app, make_user):
    clean = make_user()
    drifted = make_user(balance="75.00")
    with app.app_context():
        credit_wallet(clean, Decimal("120.00"), kind="deposit", description="test deposit", reference="DEP_test")
        db.session.commit()

        res = reconcile_wallets()

        assert res["checked"] == 2
        assert res["anomalies"] == 1
        assert res["details"][0]["user_id"] == drifted
        assert res["details"][0]["issues"] == ["ledger_mismatch"]
        row = AuditLog.query.filter_by(action="wallet_anomaly").one()
        assert row.target_id == str(drifted)
        assert json.loads(row.meta)["stored_balance"] == "75.00"


def test_ledger_matches_after_bets_and_payouts(app, client, make_user, make_game, make_payment, gateway, auth_headers):
    uid = make_user()
    ref = make_payment(uid, amount="200.00")
    gateway.status = COMPLETED
    client.get("/api/payments/callback", query_string={"reference": ref})
    game_id = make_game()
    client.post("/api/bets", json={"gameId": game_id, "betOn": "home_win", "stake": 80}, headers=auth_headers(uid))
    client.post(f"/api/admin/games/{game_id}/result", json={"result": "home_win"},
                headers=auth_headers(make_user(admin=True)))

    assert balance_of(app, uid) == Decimal("320.00")
    with app.app_context():
        assert reconcile_wallets()["anomalies"] == 0
        assert Decimal(db.session.get(Profile, uid).wallet_balance) == Decimal("320.00")
