from datetime import datetime, timedelta
from decimal import Decimal

from betwise.betting import potential_winnings
from betwise.extensions import db
from betwise.models import Bet, Transaction

from conftest import balance_of


def test_potential_winnings_rounds_to_cents():
    assert potential_winnings(Decimal("100.00"), Decimal("2.50")) == Decimal("250.00")
    assert potential_winnings(Decimal("33.33"), Decimal("1.15")) == Decimal("38.33")


def test_place_bet_debits_stake_and_snapshots_odds(app, client, make_user, make_game, auth_headers):
    uid = make_user(balance="1000.00")
    game_id = make_game(odds=("2.50", "3.10", "2.80"))

    res = client.post("/api/bets", json={"gameId": game_id, "betOn": "home_win", "stake": 100},
                      headers=auth_headers(uid))

    assert res.status_code == 201
    body = res.get_json()
    assert body["bet"]["odds"] == 2.5
    assert body["bet"]["potential_winnings"] == 250.0
    assert body["bet"]["status"] == "active"
    assert body["wallet"]["balance"] == 900.0
    assert balance_of(app, uid) == Decimal("900.00")
    with app.app_context():
        ledger = Transaction.query.filter_by(user_id=uid, type="bet").one()
        assert Decimal(ledger.amount) == Decimal("100.00")
        assert ledger.reference == f"game:{game_id}"


def test_bet_keeps_odds_after_admin_changes_them(app, client, make_user, make_game, auth_headers):
    uid = make_user(balance="500.00")
    admin = make_user(admin=True)
    game_id = make_game(odds=("2.50", "3.10", "2.80"))

    client.post("/api/bets", json={"gameId": game_id, "betOn": "home_win", "stake": 100}, headers=auth_headers(uid))
    patched = client.patch(f"/api/admin/games/{game_id}", json={"oddsHomeWin": 3.0}, headers=auth_headers(admin))
    assert patched.status_code == 200
    assert patched.get_json()["game"]["odds"]["home_win"] == 3.0

    with app.app_context():
        bet = Bet.query.filter_by(user_id=uid).one()
        assert Decimal(bet.odds) == Decimal("2.50")
        assert Decimal(bet.potential_winnings) == Decimal("250.00")


def test_stake_above_balance_is_rejected(app, client, make_user, make_game, auth_headers):
    uid = make_user(balance="50.00")
    game_id = make_game()

    res = client.post("/api/bets", json={"gameId": game_id, "betOn": "draw", "stake": 100}, headers=auth_headers(uid))

    assert res.status_code == 400
    assert res.get_json()["error"] == "insufficient_funds"
    assert balance_of(app, uid) == Decimal("50.00")
    with app.app_context():
        assert db.session.query(Bet).count() == 0
        assert Transaction.query.filter_by(user_id=uid).count() == 0


def test_stake_below_minimum_is_rejected(client, make_user, make_game, auth_headers):
    uid = make_user(balance="50.00")
    game_id = make_game()

    res = client.post("/api/bets", json={"gameId": game_id, "betOn": "draw", "stake": 5}, headers=auth_headers(uid))

    assert res.status_code == 400
    assert res.get_json()["meta"]["field"] == "stake"


def test_unknown_outcome_is_rejected(client, make_user, make_game, auth_headers):
    uid = make_user(balance="500.00")
    game_id = make_game()

    res = client.post("/api/bets", json={"gameId": game_id, "betOn": "both_teams_score", "stake": 50},
                      headers=auth_headers(uid))

    assert res.status_code == 400


def test_no_bets_once_game_has_started(app, client, make_user, make_game, auth_headers):
    uid = make_user(balance="500.00")
    game_id = make_game(status="live")

    res = client.post("/api/bets", json={"gameId": game_id, "betOn": "draw", "stake": 50}, headers=auth_headers(uid))

    assert res.status_code == 400
    assert balance_of(app, uid) == Decimal("500.00")


def test_missing_game_is_not_found(client, make_user, auth_headers):
    uid = make_user(balance="500.00")
    res = client.post("/api/bets", json={"gameId": 4242, "betOn": "draw", "stake": 50}, headers=auth_headers(uid))
    assert res.status_code == 404


def test_odds_locked_without_daily_access(client, make_user, make_game, auth_headers):
    make_game()
    uid = make_user()

    anonymous = client.get("/api/games").get_json()
    signed_in = client.get("/api/games", headers=auth_headers(uid)).get_json()

    for body in (anonymous, signed_in):
        assert body["locked"] is True
        assert body["items"][0]["odds"] is None
        assert body["items"][0]["locked"] is True


def test_odds_visible_with_daily_access(client, make_user, make_game, auth_headers):
    make_game(odds=("1.85", "3.10", "4.25"))
    uid = make_user(access_until=datetime.utcnow() + timedelta(hours=2))

    body = client.get("/api/games", headers=auth_headers(uid)).get_json()

    assert body["locked"] is False
    assert body["items"][0]["odds"] == {"home_win": 1.85, "draw": 3.1, "away_win": 4.25}


def test_expired_access_hides_odds(client, make_user, make_game, auth_headers):
    make_game()
    uid = make_user(access_until=datetime.utcnow() - timedelta(minutes=1))

    body = client.get("/api/games", headers=auth_headers(uid)).get_json()

    assert body["locked"] is True


def test_my_bets_and_ledger(client, make_user, make_game, auth_headers):
    uid = make_user(balance="300.00")
    game_id = make_game()
    headers = auth_headers(uid)
    client.post("/api/bets", json={"game_id": game_id, "bet_on": "away_win", "stake": "20"}, headers=headers)

    bets = client.get("/api/bets", headers=headers).get_json()["items"]
    ledger = client.get("/api/wallet/ledger", headers=headers).get_json()["items"]
    wallet = client.get("/api/wallet", headers=headers).get_json()["wallet"]

    assert [b["bet_on"] for b in bets] == ["away_win"]
    assert [t["type"] for t in ledger] == ["bet"]
    assert wallet["balance"] == 280.0


def test_non_string_outcome_is_rejected(client, make_user, make_game, auth_headers):
    uid = make_user(balance="500.00")
    game_id = make_game()

    res = client.post("/api/bets", json={"gameId": game_id, "betOn": 1, "stake": 50}, headers=auth_headers(uid))

    assert res.status_code == 400
    assert res.get_json()["meta"]["field"] == "bet_on"


def test_stake_beyond_storable_amount_is_rejected(app, client, make_user, make_game, auth_headers):
    uid = make_user(balance="500.00")
    game_id = make_game()

    for stake in ("1e31", "100000000000"):
        res = client.post("/api/bets", json={"gameId": game_id, "betOn": "draw", "stake": stake},
                          headers=auth_headers(uid))
        assert res.status_code == 400
        assert res.get_json()["meta"]["field"] == "stake"
    assert balance_of(app, uid) == Decimal("500.00")


def test_winnings_that_cannot_be_stored_are_rejected(app, client, make_user, make_game, auth_headers):
    uid = make_user(balance="9000000000.00")
    game_id = make_game(odds=("2.50", "3.10", "2.80"))

    res = client.post("/api/bets", json={"gameId": game_id, "betOn": "home_win", "stake": "5000000000"},
                      headers=auth_headers(uid))

    assert res.status_code == 400
    assert res.get_json()["message"] == "Stake is too large for these odds"
    with app.app_context():
        assert db.session.query(Bet).count() == 0
