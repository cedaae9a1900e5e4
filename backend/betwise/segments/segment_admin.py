from __future__ import annotations

from datetime import datetime

from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user
from sqlalchemy import case, func, or_

from betwise.auth import admin_required
from betwise.errors import InUse, NotFound, ValidationError
from betwise.extensions import db
from betwise.jobs.payment_reconciler import reconcile_pending_payments
from betwise.jobs.wallet_reconciler import reconcile_wallets
from betwise.models import (
    Bet, Game, GAME_STATUSES, League, PaymentStatus, PaymentTransaction, Profile, Team, Transaction,
)
from betwise.payments.settlement import local_day_start
from betwise.results import resume_settlement, submit_result
from betwise.utils.audit import record_audit
from betwise.utils.money import to_money

admin_bp = Blueprint("admin_bp", __name__, url_prefix="/api/admin")

ODDS_FIELDS = {"oddsHomeWin": "odds_home_win", "oddsDraw": "odds_draw", "oddsAwayWin": "odds_away_win"}
# Numeric(8, 2)
MAX_ODDS = "999999.99"


def _text(data: dict, key: str) -> str:
    value = data.get(key)
    return "" if value is None else str(value).strip()


def _odds(value, field: str):
    odds = to_money(value, field, maximum=MAX_ODDS)
    if odds <= 1:
        raise ValidationError(f"{field} must be greater than 1", meta={"field": field})
    return odds


def _match_date(value) -> datetime:
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00")).replace(tzinfo=None)
    except (TypeError, ValueError):
        raise ValidationError("matchDate must be an ISO timestamp", meta={"field": "matchDate"})


def _get_or_404(model, obj_id):
    try:
        obj = db.session.get(model, int(obj_id))
    except (TypeError, ValueError):
        obj = None
    if obj is None:
        raise NotFound(f"{model.__name__} not found")
    return obj


def _int_param(data: dict, key: str, default):
    value = data.get(key)
    if value in (None, ""):
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{key} must be an integer", meta={"field": key})


@admin_bp.post("/games/<int:game_id>/result")
@admin_required
def post_game_result(game_id: int):
    data = request.get_json(silent=True) or {}
    summary = submit_result(
        game_id,
        _text(data, "result"),
        data.get("homeScore"),
        data.get("awayScore"),
    )
    record_audit("game_result", actor_user_id=int(current_user.id), target_type="game", target_id=game_id,
                 meta={"request": data, "summary": summary.to_dict()})
    return jsonify({"ok": True, **summary.to_dict()}), 200


@admin_bp.post("/games/<int:game_id>/settle")
@admin_required
def post_resume_settlement(game_id: int):
    summary = resume_settlement(game_id)
    record_audit("game_settlement_resumed", actor_user_id=int(current_user.id), target_type="game",
                 target_id=game_id, meta=summary.to_dict())
    return jsonify({"ok": True, **summary.to_dict()}), 200


@admin_bp.get("/games/<int:game_id>/bets")
@admin_required
def game_bets(game_id: int):
    game = _get_or_404(Game, game_id)
    rows = Bet.query.filter_by(game_id=game.id).order_by(Bet.id.asc()).all()
    total_stake = sum((b.stake for b in rows), start=0)
    return jsonify({
        "ok": True,
        "game": game.to_dict(),
        "totalBets": len(rows),
        "totalStake": float(total_stake),
        "items": [b.to_dict() for b in rows],
    }), 200


@admin_bp.get("/payments/pending")
@admin_required
def pending_payments():
    rows = (
        PaymentTransaction.query.filter_by(status=PaymentStatus.PENDING.value)
        .order_by(PaymentTransaction.created_at.desc())
        .limit(200)
        .all()
    )
    return jsonify({"ok": True, "items": [r.to_dict() for r in rows]}), 200


@admin_bp.post("/payments/reconcile")
@admin_required
def run_payment_reconcile():
    data = request.get_json(silent=True) or {}
    res = reconcile_pending_payments(
        older_than_minutes=_int_param(data, "olderThanMinutes", None),
        limit=_int_param(data, "limit", 200),
    )
    return jsonify(res), 200


@admin_bp.post("/wallets/reconcile")
@admin_required
def run_wallet_reconcile():
    data = request.get_json(silent=True) or {}
    res = reconcile_wallets(limit=_int_param(data, "limit", 500))
    return jsonify({"ok": True, **res}), 200


@admin_bp.post("/leagues")
@admin_required
def create_league():
    data = request.get_json(silent=True) or {}
    name = _text(data, "name")
    if not name:
        raise ValidationError("name required", meta={"field": "name"})
    league = League(name=name, country=_text(data, "country"))
    db.session.add(league)
    db.session.commit()
    return jsonify({"ok": True, "league": league.to_dict()}), 201


@admin_bp.post("/teams")
@admin_required
def create_team():
    data = request.get_json(silent=True) or {}
    name = _text(data, "name")
    if not name:
        raise ValidationError("name required", meta={"field": "name"})
    league = _get_or_404(League, data.get("leagueId") or 0)
    team = Team(name=name, league_id=league.id)
    db.session.add(team)
    db.session.commit()
    return jsonify({"ok": True, "team": team.to_dict()}), 201


@admin_bp.post("/games")
@admin_required
def create_game():
    data = request.get_json(silent=True) or {}
    league = _get_or_404(League, data.get("leagueId") or 0)
    home = _get_or_404(Team, data.get("homeTeamId") or 0)
    away = _get_or_404(Team, data.get("awayTeamId") or 0)
    if home.id == away.id:
        raise ValidationError("a team cannot play itself", meta={"field": "awayTeamId"})
    game = Game(
        league_id=league.id,
        home_team_id=home.id,
        away_team_id=away.id,
        match_date=_match_date(data.get("matchDate")),
        **{col: _odds(data.get(key), key) for key, col in ODDS_FIELDS.items()},
        status="upcoming",
        result="pending",
    )
    db.session.add(game)
    db.session.commit()
    return jsonify({"ok": True, "game": game.to_dict()}), 201


@admin_bp.patch("/games/<int:game_id>")
@admin_required
def update_game(game_id: int):
    """Odds, kickoff and upcoming/live status. Results go through /result only."""
    game = _get_or_404(Game, game_id)
    data = request.get_json(silent=True) or {}
    for key, col in ODDS_FIELDS.items():
        if key in data:
            setattr(game, col, _odds(data[key], key))
    if "matchDate" in data:
        game.match_date = _match_date(data["matchDate"])
    if "status" in data:
        status = _text(data, "status")
        if status not in GAME_STATUSES or status == "finished":
            raise ValidationError("status must be upcoming or live", meta={"field": "status"})
        if game.status == "finished":
            raise ValidationError("finished games cannot be reopened", meta={"field": "status"})
        game.status = status
    db.session.commit()
    return jsonify({"ok": True, "game": game.to_dict()}), 200


@admin_bp.delete("/games/<int:game_id>")
@admin_required
def delete_game(game_id: int):
    """Only games nobody has bet on; bets keep their game for the ledger."""
    game = _get_or_404(Game, game_id)
    bets = Bet.query.filter_by(game_id=game.id).count()
    if bets:
        raise InUse("Game has bets and cannot be deleted", meta={"bets": bets})
    db.session.delete(game)
    db.session.commit()
    record_audit("game_deleted", actor_user_id=int(current_user.id), target_type="game", target_id=game_id)
    return jsonify({"ok": True}), 200


@admin_bp.patch("/leagues/<int:league_id>")
@admin_required
def update_league(league_id: int):
    league = _get_or_404(League, league_id)
    data = request.get_json(silent=True) or {}
    if "name" in data:
        name = _text(data, "name")
        if not name:
            raise ValidationError("name required", meta={"field": "name"})
        league.name = name
    if "country" in data:
        league.country = _text(data, "country")
    db.session.commit()
    return jsonify({"ok": True, "league": league.to_dict()}), 200


@admin_bp.delete("/leagues/<int:league_id>")
@admin_required
def delete_league(league_id: int):
    league = _get_or_404(League, league_id)
    teams = Team.query.filter_by(league_id=league.id).count()
    games = Game.query.filter_by(league_id=league.id).count()
    if teams or games:
        raise InUse("League still has teams or games", meta={"teams": teams, "games": games})
    db.session.delete(league)
    db.session.commit()
    record_audit("league_deleted", actor_user_id=int(current_user.id), target_type="league", target_id=league_id)
    return jsonify({"ok": True}), 200


@admin_bp.patch("/teams/<int:team_id>")
@admin_required
def update_team(team_id: int):
    team = _get_or_404(Team, team_id)
    data = request.get_json(silent=True) or {}
    if "name" in data:
        name = _text(data, "name")
        if not name:
            raise ValidationError("name required", meta={"field": "name"})
        team.name = name
    if "leagueId" in data:
        team.league_id = _get_or_404(League, data.get("leagueId")).id
    db.session.commit()
    return jsonify({"ok": True, "team": team.to_dict()}), 200


@admin_bp.delete("/teams/<int:team_id>")
@admin_required
def delete_team(team_id: int):
    team = _get_or_404(Team, team_id)
    games = Game.query.filter(or_(Game.home_team_id == team.id, Game.away_team_id == team.id)).count()
    if games:
        raise InUse("Team still plays in scheduled or past games", meta={"games": games})
    db.session.delete(team)
    db.session.commit()
    record_audit("team_deleted", actor_user_id=int(current_user.id), target_type="team", target_id=team_id)
    return jsonify({"ok": True}), 200


@admin_bp.get("/users")
@admin_required
def list_users():
    """Every profile with its betting totals.

    winnings sums potential_winnings of won bets, losses sums stakes of lost bets.
    """
    stats = (
        db.session.query(
            Bet.user_id,
            func.count(Bet.id),
            func.coalesce(func.sum(case((Bet.status == "won", Bet.potential_winnings), else_=0)), 0),
            func.coalesce(func.sum(case((Bet.status == "lost", Bet.stake), else_=0)), 0),
        )
        .group_by(Bet.user_id)
        .all()
    )
    by_user = {int(uid): (int(n), float(won), float(lost)) for uid, n, won, lost in stats}

    items = []
    for profile in Profile.query.order_by(Profile.created_at.desc()).all():
        total, won, lost = by_user.get(int(profile.id), (0, 0.0, 0.0))
        items.append({**profile.to_dict(), "totalBets": total, "winnings": won, "losses": lost})
    return jsonify({"ok": True, "items": items}), 200


@admin_bp.get("/users/<int:user_id>/bets")
@admin_required
def user_bets(user_id: int):
    profile = _get_or_404(Profile, user_id)
    rows = Bet.query.filter_by(user_id=profile.id).order_by(Bet.placed_at.desc()).limit(200).all()
    items = [{**b.to_dict(), "game": b.game.to_dict() if b.game else None} for b in rows]
    return jsonify({"ok": True, "user": profile.to_dict(), "items": items}), 200


@admin_bp.get("/stats")
@admin_required
def dashboard_stats():
    since = local_day_start(tz_name=current_app.config.get("BETWISE_TIMEZONE", "Africa/Nairobi"))
    revenue = (
        db.session.query(func.coalesce(func.sum(Transaction.amount), 0))
        .filter(Transaction.type == "subscription", Transaction.created_at >= since)
        .scalar()
    )
    return jsonify({
        "ok": True,
        "totalUsers": Profile.query.count(),
        "upcomingGames": Game.query.filter_by(status="upcoming").count(),
        "dailyRevenue": float(revenue or 0),
        "todayBets": Bet.query.filter(Bet.placed_at >= since).count(),
        "since": since.isoformat(),
    }), 200


@admin_bp.get("/payments")
@admin_required
def list_payments():
    rows = PaymentTransaction.query.order_by(PaymentTransaction.created_at.desc()).limit(500).all()
    counts = dict(
        db.session.query(PaymentTransaction.status, func.count(PaymentTransaction.id))
        .group_by(PaymentTransaction.status)
        .all()
    )
    return jsonify({
        "ok": True,
        "pendingCount": int(counts.get(PaymentStatus.PENDING.value, 0)),
        "completedCount": int(counts.get(PaymentStatus.COMPLETED.value, 0)),
        "items": [r.to_dict() for r in rows],
    }), 200
