from datetime import datetime

from betwise.extensions import db


class Bet(db.Model):
    __tablename__ = "bets"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("profiles.id"), nullable=False, index=True)
    game_id = db.Column(db.Integer, db.ForeignKey("games.id"), nullable=False, index=True)

    stake = db.Column(db.Numeric(12, 2), nullable=False)
    # Snapshot taken at placement; later odds changes on the game never reach here.
    odds = db.Column(db.Numeric(8, 2), nullable=False)
    bet_on = db.Column(db.String(16), nullable=False)  # home_win | draw | away_win
    potential_winnings = db.Column(db.Numeric(12, 2), nullable=False)

    status = db.Column(db.String(16), nullable=False, default="active", index=True)  # active | won | lost

    placed_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    settled_at = db.Column(db.DateTime, nullable=True)

    game = db.relationship("Game")

    def to_dict(self):
        return {
            "id": int(self.id),
            "user_id": int(self.user_id),
            "game_id": int(self.game_id),
            "stake": float(self.stake),
            "odds": float(self.odds),
            "bet_on": self.bet_on,
            "potential_winnings": float(self.potential_winnings),
            "status": self.status,
            "placed_at": self.placed_at.isoformat() if self.placed_at else None,
            "settled_at": self.settled_at.isoformat() if self.settled_at else None,
        }
