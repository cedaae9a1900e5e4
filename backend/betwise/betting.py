from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP

from flask import current_app

from betwise.errors import NotFound, ValidationError
from betwise.extensions import db
from betwise.models import Bet, Game, OUTCOMES
from betwise.utils.money import CENT, MAX_AMOUNT, to_money
from betwise.utils.wallets import debit_wallet


def potential_winnings(stake: Decimal, odds: Decimal) -> Decimal:
    return (Decimal(stake) * Decimal(odds)).quantize(CENT, rounding=ROUND_HALF_UP)


def place_bet(user_id: int, game_id: int, bet_on: str, stake) -> Bet:
    """Debit the stake and record the bet in one DB transaction.

    Odds and potential winnings are copied from the game now and never
    recomputed.
    """
    if bet_on not in OUTCOMES:
        raise ValidationError("bet_on must be one of home_win, draw, away_win", meta={"field": "bet_on"})
    amount = to_money(stake, "stake", maximum=current_app.config.get("MAX_AMOUNT"))
    minimum = to_money(current_app.config.get("MIN_STAKE", 10), "MIN_STAKE")
    if amount < minimum:
        raise ValidationError(f"Minimum stake amount is KES {minimum:,.2f}", meta={"field": "stake", "minimum": float(minimum)})

    game = db.session.get(Game, int(game_id))
    if game is None:
        raise NotFound("Game not found")
    if game.status != "upcoming":
        raise ValidationError("Betting is closed for this game", meta={"field": "game_id", "status": game.status})

    odds = Decimal(game.odds_for(bet_on))
    winnings = potential_winnings(amount, odds)
    if winnings > MAX_AMOUNT:
        raise ValidationError("Stake is too large for these odds", meta={"field": "stake", "maximum": float(MAX_AMOUNT)})
    bet = Bet(
        user_id=int(user_id),
        game_id=int(game.id),
        stake=amount,
        odds=odds,
        bet_on=bet_on,
        potential_winnings=winnings,
        status="active",
    )
    try:
        debit_wallet(user_id, amount, kind="bet", description=f"Bet on {game.title} ({bet_on})",
                     reference=f"game:{game.id}")
        db.session.add(bet)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info("bet %s placed: user=%s game=%s %s stake=%s odds=%s", bet.id, user_id, game_id, bet_on, amount, odds)
    return bet
