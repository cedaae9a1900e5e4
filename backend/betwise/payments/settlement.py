"""Settlement: the financial effect of a completed payment or a finished game.

Nothing in here commits on behalf of a payment; the callback handler owns that
boundary so the status claim and the wallet write land together. Bet resolution
commits per bet.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, time, timedelta, timezone
from decimal import Decimal
from zoneinfo import ZoneInfo

from flask import current_app
from sqlalchemy import case

from betwise.errors import NotFound, SettlementFailure
from betwise.extensions import db
from betwise.models import Bet, Game, PaymentTransaction, PaymentType, Profile, Transaction
from betwise.utils.audit import record_audit
from betwise.utils.wallets import credit_wallet


def next_local_midnight(now: datetime | None = None, tz_name: str = "Africa/Nairobi") -> datetime:
    """Start of tomorrow in `tz_name`, returned as naive UTC like every other timestamp we store."""
    tz = ZoneInfo(tz_name)
    now_utc = (now or datetime.utcnow()).replace(tzinfo=timezone.utc)
    tomorrow = (now_utc.astimezone(tz) + timedelta(days=1)).date()
    midnight = datetime.combine(tomorrow, time.min, tzinfo=tz)
    return midnight.astimezone(timezone.utc).replace(tzinfo=None)


def local_day_start(now: datetime | None = None, tz_name: str = "Africa/Nairobi") -> datetime:
    tz = ZoneInfo(tz_name)
    now_utc = (now or datetime.utcnow()).replace(tzinfo=timezone.utc)
    midnight = datetime.combine(now_utc.astimezone(tz).date(), time.min, tzinfo=tz)
    return midnight.astimezone(timezone.utc).replace(tzinfo=None)


def settle_deposit(ptx: PaymentTransaction) -> None:
    credit_wallet(
        ptx.user_id,
        Decimal(ptx.amount),
        kind="deposit",
        description=f"Wallet deposit via {ptx.provider}",
        reference=ptx.id,
    )


def settle_subscription(ptx: PaymentTransaction, now: datetime | None = None) -> None:
    until = next_local_midnight(now, current_app.config.get("BETWISE_TIMEZONE", "Africa/Nairobi"))
    granted = Profile.daily_access_granted_until
    rows = (
        db.session.query(Profile)
        .filter(Profile.id == int(ptx.user_id))
        # never shorten a grant that already runs later
        .update({granted: case((granted > until, granted), else_=until)}, synchronize_session=False)
    )
    if rows != 1:
        raise NotFound(f"profile {ptx.user_id} not found")
    db.session.add(Transaction(
        user_id=int(ptx.user_id),
        type="subscription",
        amount=Decimal(ptx.amount),
        description=f"Daily subscription payment via {ptx.provider}",
        reference=ptx.id,
    ))


SETTLERS = {
    PaymentType.DEPOSIT: settle_deposit,
    PaymentType.SUBSCRIPTION: settle_subscription,
}
if set(SETTLERS) != set(PaymentType):
    raise RuntimeError(f"payment types without a settler: {sorted(t.value for t in set(PaymentType) - set(SETTLERS))}")


def apply_payment_settlement(ptx: PaymentTransaction) -> None:
    SETTLERS[ptx.payment_type](ptx)


@dataclass
class ResolutionSummary:
    game_id: int
    winning_bet_count: int = 0
    losing_bet_count: int = 0
    total_disbursed: Decimal = field(default_factory=lambda: Decimal("0.00"))

    def to_dict(self) -> dict:
        return {
            "gameId": int(self.game_id),
            "winningBetCount": self.winning_bet_count,
            "losingBetCount": self.losing_bet_count,
            "totalDisbursed": float(self.total_disbursed),
        }


def _resolve_bet(bet_id: int, result: str, title: str) -> tuple[str, Decimal] | None:
    bet = db.session.get(Bet, bet_id)
    won = bet.bet_on == result
    new_status = "won" if won else "lost"
    rows = (
        Bet.query.filter_by(id=bet_id, status="active")
        .update({"status": new_status, "settled_at": datetime.utcnow()}, synchronize_session=False)
    )
    if rows != 1:
        return None
    if not won:
        return new_status, Decimal("0.00")
    amount = Decimal(bet.potential_winnings)
    credit_wallet(
        bet.user_id,
        amount,
        kind="bet_won",
        description=f"Winnings from bet on {title}",
        reference=f"bet:{bet.id}",
    )
    return new_status, amount


def resolve_game_bets(game: Game) -> ResolutionSummary:
    """Mark every active bet on a finished game won or lost, paying winners.

    Each bet is its own commit, keyed on `status='active'`, so a retry after a
    failure only touches bets that are still unresolved.
    """
    game_id = int(game.id)
    result = game.result
    title = game.title
    summary = ResolutionSummary(game_id=game_id)

    bet_ids = [
        row.id for row in
        db.session.query(Bet.id).filter(Bet.game_id == game_id, Bet.status == "active").order_by(Bet.id.asc()).all()
    ]
    for bet_id in bet_ids:
        try:
            outcome = _resolve_bet(bet_id, result, title)
            db.session.commit()
        except Exception as e:
            db.session.rollback()
            current_app.logger.exception("bet settlement failed game=%s bet=%s", game_id, bet_id)
            record_audit("settlement_failure", target_type="bet", target_id=bet_id,
                         meta={"game_id": game_id, "error": str(e), "partial": summary.to_dict()})
            raise SettlementFailure(
                f"Settlement stopped at bet {bet_id}; retry to resume",
                meta={"bet_id": bet_id, "partial": summary.to_dict()},
            ) from e
        if outcome is None:
            continue
        status, amount = outcome
        if status == "won":
            summary.winning_bet_count += 1
            summary.total_disbursed += amount
        else:
            summary.losing_bet_count += 1

    current_app.logger.info(
        "game %s settled: %s won, %s lost, KES %s paid out",
        game_id, summary.winning_bet_count, summary.losing_bet_count, summary.total_disbursed,
    )
    return summary
