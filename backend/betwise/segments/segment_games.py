from __future__ import annotations

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from betwise.betting import place_bet
from betwise.models import Bet, Game
from betwise.utils.wallets import wallet_snapshot

games_bp = Blueprint("games_bp", __name__, url_prefix="/api")


def _can_see_odds() -> bool:
    if not current_user.is_authenticated:
        return False
    return current_user.is_admin or current_user.has_daily_access()


@games_bp.get("/games")
def list_games():
    """Upcoming and live fixtures. Odds are premium: shown only with today's access."""
    status = (request.args.get("status") or "").strip().lower()
    q = Game.query
    if status in ("upcoming", "live", "finished"):
        q = q.filter(Game.status == status)
    else:
        q = q.filter(Game.status.in_(("upcoming", "live")))
    games = q.order_by(Game.match_date.asc()).limit(200).all()
    show_odds = _can_see_odds()
    return jsonify({"ok": True, "locked": not show_odds, "items": [g.to_dict(include_odds=show_odds) for g in games]}), 200


@games_bp.post("/bets")
@login_required
def create_bet():
    data = request.get_json(silent=True) or {}
    try:
        game_id = int(data.get("gameId") or data.get("game_id") or 0)
    except (TypeError, ValueError):
        game_id = 0
    if game_id <= 0:
        return jsonify({"message": "gameId required"}), 400

    bet_on = str(data.get("betOn") or data.get("bet_on") or "").strip()
    bet = place_bet(int(current_user.id), game_id, bet_on, data.get("stake"))
    return jsonify({"ok": True, "bet": bet.to_dict(), "wallet": wallet_snapshot(int(current_user.id))}), 201


@games_bp.get("/bets")
@login_required
def my_bets():
    rows = Bet.query.filter_by(user_id=int(current_user.id)).order_by(Bet.placed_at.desc()).limit(200).all()
    return jsonify({"ok": True, "items": [b.to_dict() for b in rows]}), 200
