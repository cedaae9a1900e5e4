"""Admin result entry: finish a game and settle its bets."""
from __future__ import annotations

from flask import current_app

from betwise.errors import NotFound, ResultConflict, ValidationError
from betwise.extensions import db
from betwise.models import Game, OUTCOMES
from betwise.payments.settlement import ResolutionSummary, resolve_game_bets


def _parse_score(value, field: str) -> int | None:
    if value is None or value == "":
        return None
    try:
        score = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a whole number", meta={"field": field})
    if score < 0 or str(score) != str(value).strip():
        raise ValidationError(f"{field} must be a whole number", meta={"field": field})
    return score


def result_from_scores(home: int, away: int) -> str:
    if home > away:
        return "home_win"
    if away > home:
        return "away_win"
    return "draw"


def submit_result(game_id: int, result: str, home_score=None, away_score=None) -> ResolutionSummary:
    if result not in OUTCOMES:
        raise ValidationError("result must be one of home_win, draw, away_win", meta={"field": "result"})
    home = _parse_score(home_score, "homeScore")
    away = _parse_score(away_score, "awayScore")
    if (home is None) != (away is None):
        raise ValidationError("homeScore and awayScore go together", meta={"field": "homeScore"})
    if home is not None and result_from_scores(home, away) != result:
        raise ValidationError("result does not match the score", meta={"field": "result"})

    # Claim the game: only one submission can move it to finished.
    rows = (
        Game.query.filter(Game.id == int(game_id), Game.status != "finished")
        .update({"status": "finished", "result": result, "home_team_score": home, "away_team_score": away},
                synchronize_session=False)
    )
    db.session.commit()
    if rows != 1:
        if db.session.get(Game, int(game_id)) is None:
            raise NotFound("Game not found")
        raise ResultConflict("Game already has a final result")

    game = db.session.get(Game, int(game_id))
    current_app.logger.info("game %s finished with %s (%s-%s)", game_id, result, home, away)
    return resolve_game_bets(game)


def resume_settlement(game_id: int) -> ResolutionSummary:
    """Retry path after a partial failure: settles bets still active on a finished game."""
    game = db.session.get(Game, int(game_id))
    if game is None:
        raise NotFound("Game not found")
    if game.status != "finished" or game.result not in OUTCOMES:
        raise ResultConflict("Game has no final result yet")
    return resolve_game_bets(game)
