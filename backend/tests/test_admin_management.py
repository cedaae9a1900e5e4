from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from betwise.extensions import db
from betwise.models import Game, League, Team, Transaction


@pytest.fixture
def admin_headers(make_user, auth_headers):
    return auth_headers(make_user(admin=True))


def _bet(client, headers, game_id, bet_on, stake):
    res = client.post("/api/bets", json={"gameId": game_id, "betOn": bet_on, "stake": stake}, headers=headers)
    assert res.status_code == 201


def _game_refs(app, game_id):
    with app.app_context():
        game = db.session.get(Game, game_id)
        return game.league_id, game.home_team_id, game.away_team_id


def test_management_routes_need_admin_role(client, make_user, auth_headers):
    headers = auth_headers(make_user())
    for path in ("/api/admin/users", "/api/admin/stats", "/api/admin/payments"):
        assert client.get(path, headers=headers).status_code == 403


def test_user_list_carries_bet_totals(client, make_user, make_game, auth_headers, admin_headers):
    punter = make_user(balance="500.00")
    idle = make_user(balance="70.00")
    game_id = make_game(odds=("2.50", "3.10", "2.80"))
    _bet(client, auth_headers(punter), game_id, "home_win", 100)
    _bet(client, auth_headers(punter), game_id, "draw", 40)
    client.post(f"/api/admin/games/{game_id}/result", json={"result": "home_win"}, headers=admin_headers)

    res = client.get("/api/admin/users", headers=admin_headers)

    assert res.status_code == 200
    users = {u["id"]: u for u in res.get_json()["items"]}
    assert users[punter]["totalBets"] == 2
    assert users[punter]["winnings"] == 250.0
    assert users[punter]["losses"] == 40.0
    assert users[punter]["wallet_balance"] == 610.0
    assert users[idle]["totalBets"] == 0
    assert users[idle]["winnings"] == 0.0
    assert users[idle]["is_admin"] is False
    assert any(u["is_admin"] for u in users.values())


def test_user_bet_history(client, make_user, make_game, auth_headers, admin_headers):
    uid = make_user(balance="100.00")
    game_id = make_game()
    _bet(client, auth_headers(uid), game_id, "away_win", 25)

    body = client.get(f"/api/admin/users/{uid}/bets", headers=admin_headers).get_json()

    assert body["user"]["id"] == uid
    assert len(body["items"]) == 1
    assert body["items"][0]["stake"] == 25.0
    assert body["items"][0]["game"]["home_team"] == "Gor Mahia"
    assert client.get("/api/admin/users/9999/bets", headers=admin_headers).status_code == 404


def test_dashboard_stats_count_today_only(app, client, make_user, make_game, auth_headers, admin_headers):
    uid = make_user(balance="100.00")
    make_game(status="finished")
    game_id = make_game()
    _bet(client, auth_headers(uid), game_id, "draw", 10)
    with app.app_context():
        db.session.add_all([
            Transaction(user_id=uid, type="subscription", amount=Decimal("500.00"), reference="SUB_today"),
            Transaction(user_id=uid, type="subscription", amount=Decimal("500.00"), reference="SUB_old",
                        created_at=datetime.utcnow() - timedelta(days=2)),
            Transaction(user_id=uid, type="deposit", amount=Decimal("900.00"), reference="DEP_today"),
        ])
        db.session.commit()

    body = client.get("/api/admin/stats", headers=admin_headers).get_json()

    assert body["totalUsers"] == 2
    assert body["upcomingGames"] == 1
    assert body["dailyRevenue"] == 500.0
    assert body["todayBets"] == 1


def test_payment_list_counts_by_status(client, make_user, make_payment, admin_headers):
    uid = make_user()
    make_payment(uid)
    make_payment(uid, status="completed")
    make_payment(uid, kind="subscription", status="completed")
    make_payment(uid, status="failed")

    body = client.get("/api/admin/payments", headers=admin_headers).get_json()

    assert len(body["items"]) == 4
    assert body["pendingCount"] == 1
    assert body["completedCount"] == 2


def test_league_and_team_updates(client, admin_headers):
    league = client.post("/api/admin/leagues", json={"name": "Ligi Kuu", "country": "Tanzania"},
                         headers=admin_headers).get_json()["league"]
    other = client.post("/api/admin/leagues", json={"name": "Uganda Premier League", "country": "Uganda"},
                        headers=admin_headers).get_json()["league"]
    team = client.post("/api/admin/teams", json={"name": "Simba", "leagueId": league["id"]},
                       headers=admin_headers).get_json()["team"]

    renamed = client.patch(f"/api/admin/leagues/{league['id']}", json={"name": "NBC Premier League"},
                           headers=admin_headers)
    assert renamed.status_code == 200
    assert renamed.get_json()["league"] == {"id": league["id"], "name": "NBC Premier League", "country": "Tanzania"}

    moved = client.patch(f"/api/admin/teams/{team['id']}", json={"name": "Simba SC", "leagueId": other["id"]},
                         headers=admin_headers)
    assert moved.status_code == 200
    assert moved.get_json()["team"]["league_id"] == other["id"]

    assert client.patch(f"/api/admin/teams/{team['id']}", json={"name": 7}, headers=admin_headers).status_code == 200
    assert client.patch(f"/api/admin/teams/{team['id']}", json={"name": ""}, headers=admin_headers).status_code == 400
    assert client.patch(f"/api/admin/teams/{team['id']}", json={"leagueId": "x"},
                        headers=admin_headers).status_code == 404


def test_referenced_rows_cannot_be_deleted(app, client, make_game, admin_headers):
    game_id = make_game()
    league_id, home_id, _ = _game_refs(app, game_id)

    league = client.delete(f"/api/admin/leagues/{league_id}", headers=admin_headers)
    team = client.delete(f"/api/admin/teams/{home_id}", headers=admin_headers)

    assert league.status_code == 409
    assert league.get_json()["error"] == "in_use"
    assert team.status_code == 409


def test_game_with_bets_cannot_be_deleted(app, client, make_user, make_game, auth_headers, admin_headers):
    game_id = make_game()
    _bet(client, auth_headers(make_user(balance="100.00")), game_id, "draw", 10)

    res = client.delete(f"/api/admin/games/{game_id}", headers=admin_headers)

    assert res.status_code == 409
    assert res.get_json()["meta"] == {"bets": 1}
    with app.app_context():
        assert db.session.get(Game, game_id) is not None


def test_unused_fixture_can_be_removed_bottom_up(app, client, make_game, admin_headers):
    game_id = make_game()
    league_id, home_id, away_id = _game_refs(app, game_id)

    assert client.delete(f"/api/admin/games/{game_id}", headers=admin_headers).status_code == 200
    for team_id in (home_id, away_id):
        assert client.delete(f"/api/admin/teams/{team_id}", headers=admin_headers).status_code == 200
    assert client.delete(f"/api/admin/leagues/{league_id}", headers=admin_headers).status_code == 200

    with app.app_context():
        assert db.session.get(Game, game_id) is None
        assert db.session.get(League, league_id) is None
        assert Team.query.count() == 0
    assert client.delete(f"/api/admin/games/{game_id}", headers=admin_headers).status_code == 404
