from datetime import datetime

from betwise.extensions import db

OUTCOMES = ("home_win", "draw", "away_win")
GAME_STATUSES = ("upcoming", "live", "finished")


class League(db.Model):
    __tablename__ = "leagues"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    country = db.Column(db.String(80), nullable=False, default="")

    def to_dict(self):
        return {"id": int(self.id), "name": self.name, "country": self.country or ""}


class Team(db.Model):
    __tablename__ = "teams"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    league_id = db.Column(db.Integer, db.ForeignKey("leagues.id"), nullable=False, index=True)

    league = db.relationship("League")

    def to_dict(self):
        return {"id": int(self.id), "name": self.name, "league_id": int(self.league_id)}


class Game(db.Model):
    __tablename__ = "games"

    id = db.Column(db.Integer, primary_key=True)
    league_id = db.Column(db.Integer, db.ForeignKey("leagues.id"), nullable=False, index=True)
    home_team_id = db.Column(db.Integer, db.ForeignKey("teams.id"), nullable=False)
    away_team_id = db.Column(db.Integer, db.ForeignKey("teams.id"), nullable=False)

    match_date = db.Column(db.DateTime, nullable=False)

    odds_home_win = db.Column(db.Numeric(8, 2), nullable=False)
    odds_draw = db.Column(db.Numeric(8, 2), nullable=False)
    odds_away_win = db.Column(db.Numeric(8, 2), nullable=False)

    status = db.Column(db.String(16), nullable=False, default="upcoming")  # upcoming | live | finished
    result = db.Column(db.String(16), nullable=False, default="pending")  # pending | home_win | draw | away_win

    home_team_score = db.Column(db.Integer, nullable=True)
    away_team_score = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    league = db.relationship("League")
    home_team = db.relationship("Team", foreign_keys=[home_team_id])
    away_team = db.relationship("Team", foreign_keys=[away_team_id])

    def odds_for(self, outcome: str):
        return {
            "home_win": self.odds_home_win,
            "draw": self.odds_draw,
            "away_win": self.odds_away_win,
        }[outcome]

    @property
    def title(self) -> str:
        home = self.home_team.name if self.home_team else f"#{self.home_team_id}"
        away = self.away_team.name if self.away_team else f"#{self.away_team_id}"
        return f"{home} vs {away}"

    def to_dict(self, include_odds: bool = True):
        out = {
            "id": int(self.id),
            "league_id": int(self.league_id),
            "league": self.league.name if self.league else None,
            "home_team_id": int(self.home_team_id),
            "home_team": self.home_team.name if self.home_team else None,
            "away_team_id": int(self.away_team_id),
            "away_team": self.away_team.name if self.away_team else None,
            "match_date": self.match_date.isoformat() if self.match_date else None,
            "status": self.status,
            "result": self.result,
            "home_team_score": self.home_team_score,
            "away_team_score": self.away_team_score,
        }
        if include_odds:
            out["odds"] = {
                "home_win": float(self.odds_home_win),
                "draw": float(self.odds_draw),
                "away_win": float(self.odds_away_win),
            }
            out["locked"] = False
        else:
            out["odds"] = None
            out["locked"] = True
        return out
