from __future__ import annotations

import json
from datetime import datetime, timedelta

import click

from betwise.extensions import db
from betwise.jobs.payment_reconciler import reconcile_pending_payments
from betwise.jobs.wallet_reconciler import reconcile_wallets
from betwise.models import Game, League, Profile, Team, UserRole


def register_cli(app):
    @app.cli.command("reconcile-payments")
    @click.option("--older-than", "older_than", type=int, default=None, help="Minutes a payment must have been pending.")
    @click.option("--limit", type=int, default=200)
    def reconcile_payments_cmd(older_than, limit):
        """Poll the gateway for stuck pending payments."""
        click.echo(json.dumps(reconcile_pending_payments(older_than_minutes=older_than, limit=limit), default=str))

    @app.cli.command("reconcile-wallets")
    @click.option("--limit", type=int, default=500)
    def reconcile_wallets_cmd(limit):
        """Compare wallet balances with the ledger and audit mismatches."""
        click.echo(json.dumps(reconcile_wallets(limit=limit), default=str))

    @app.cli.command("make-admin")
    @click.argument("email")
    def make_admin_cmd(email):
        profile = Profile.query.filter_by(email=email.strip().lower()).first()
        if not profile:
            raise click.ClickException(f"no profile for {email}")
        if not profile.is_admin:
            db.session.add(UserRole(user_id=profile.id, role="admin"))
            db.session.commit()
        click.echo(f"{profile.email} is admin")

    @app.cli.command("seed-demo")
    def seed_demo_cmd():
        """A league, four teams and two upcoming fixtures."""
        league = League(name="Kenyan Premier League", country="Kenya")
        db.session.add(league)
        db.session.flush()
        names = ["Gor Mahia", "AFC Leopards", "Tusker", "Bandari"]
        teams = [Team(name=n, league_id=league.id) for n in names]
        db.session.add_all(teams)
        db.session.flush()
        kickoff = datetime.utcnow() + timedelta(days=1)
        db.session.add_all([
            Game(league_id=league.id, home_team_id=teams[0].id, away_team_id=teams[1].id, match_date=kickoff,
                 odds_home_win=2.10, odds_draw=3.20, odds_away_win=3.40),
            Game(league_id=league.id, home_team_id=teams[2].id, away_team_id=teams[3].id, match_date=kickoff,
                 odds_home_win=1.85, odds_draw=3.10, odds_away_win=4.25),
        ])
        db.session.commit()
        click.echo("seeded")
