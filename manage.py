#!/usr/bin/env python3
"""
F1 Tipping Management CLI

Command-line management for results, scoring and the database.
"""

import logging
import os

# The hourly results sweep belongs to the web process, not to CLI runs
os.environ.setdefault("SCHEDULER_ENABLED", "false")

import click  # noqa: E402
from flask.cli import with_appcontext  # noqa: E402
from sqlalchemy import text  # noqa: E402
from sqlalchemy.exc import SQLAlchemyError  # noqa: E402

from app import create_app, db  # noqa: E402
from app.models import Prediction, Race, User  # noqa: E402
from app.services.results_service import (  # noqa: E402
    import_season_schedule,
    re_resolve_race,
    sync_race_results,
)
from app.services.score_service import (  # noqa: E402
    process_race_scores,
    recompute_user_totals,
)
from app.utils.cache_utils import get_cache_stats  # noqa: E402
from app.utils.exceptions import ScoringError  # noqa: E402
from app.utils.results_sync import ResultsSync, ResultsSyncError  # noqa: E402

app = create_app()


def _get_race(race_id):
    race = db.session.get(Race, race_id)
    if race is None:
        click.echo(f"❌ Race {race_id} not found!")
    return race


@click.group()
def cli():
    """F1 Tipping Management CLI"""
    pass


# Scoring Commands
@cli.group()
def score():
    """Scoring commands"""
    pass


@score.command("process")
@click.argument("race_id", type=int)
@click.option("--force", is_flag=True, help="Re-score predictions that already have scores")
@click.option("--summaries", is_flag=True, help="Print every user's score summary")
@with_appcontext
def process(race_id, force, summaries):
    """Score all predictions for a race"""
    try:
        report = process_race_scores(race_id, force=force)

        if report.skipped:
            click.echo(
                f"⚠️  Race {race_id} already scored ({report.processed_count} predictions). "
                f"Use --force to re-score."
            )
            return

        click.echo(
            f"✅ Scored {report.processed_count} predictions for race {race_id}"
            + (f", {report.failed_count} failed" if report.failed_count else "")
        )
        for result in report.results:
            click.echo(f"  {result.username}: {result.score} pts")
            if summaries:
                click.echo(result.summary)

    except ScoringError as e:
        click.echo(f"❌ {str(e)}")
    except SQLAlchemyError as e:
        db.session.rollback()
        click.echo(f"❌ Database error while scoring: {str(e)}")
        logging.error(f"Scoring failed - SQL error: {e}")


@score.command("recompute-totals")
@with_appcontext
def recompute_totals():
    """Rebuild user totals from stored prediction scores"""
    try:
        changed = recompute_user_totals()
        click.echo(f"✅ Recomputed totals, {changed} users corrected")
    except SQLAlchemyError as e:
        db.session.rollback()
        click.echo(f"❌ Database error recomputing totals: {str(e)}")
        logging.error(f"Totals recomputation failed - SQL error: {e}")


# Results Commands
@cli.group()
def results():
    """Race results commands"""
    pass


@results.command("sync")
@click.argument("race_id", type=int)
@with_appcontext
def sync_results(race_id):
    """Fetch and store official results for a race"""
    race = _get_race(race_id)
    if not race:
        return

    try:
        click.echo(f"Fetching results for {race.race_name} ({race.season} R{race.round})...")
        result = sync_race_results(race, ResultsSync(app.config.get("RESULTS_API_BASE_URL")))

        if result is None:
            click.echo("⚠️  No results available yet")
            return

        click.echo(f"✅ Stored {len(result.entries)} entries, podium: {', '.join(result.podium)}")
        for h2h in result.head_to_heads:
            click.echo(f"  {h2h.kind} head-to-head: {h2h.winner or h2h.status}")

    except ResultsSyncError as e:
        click.echo(f"❌ Error fetching results: {str(e)}")
    except SQLAlchemyError as e:
        db.session.rollback()
        click.echo(f"❌ Database error storing results: {str(e)}")


@results.command("resolve")
@click.argument("race_id", type=int)
@with_appcontext
def resolve(race_id):
    """Re-run head-to-head resolution from stored results"""
    race = _get_race(race_id)
    if not race:
        return

    try:
        resolved = re_resolve_race(race)
        if resolved is None:
            click.echo(f"❌ No results stored for race {race_id}")
            return

        if not resolved:
            click.echo("⚠️  No head-to-head matchups configured")
        for kind, h2h in resolved.items():
            click.echo(
                f"✅ {kind}: {h2h.participant1_id} vs {h2h.participant2_id} -> "
                f"{h2h.winner or h2h.status}"
            )

    except SQLAlchemyError as e:
        db.session.rollback()
        click.echo(f"❌ Database error resolving head-to-head: {str(e)}")


# Race Commands
@cli.group()
def race():
    """Race management commands"""
    pass


@race.command("list")
@click.option("--season", help="Only races of this season")
@with_appcontext
def list_races(season):
    """List races"""
    query = Race.query
    if season:
        query = query.filter_by(season=season)
    races = query.order_by(Race.season.desc(), Race.round).all()

    if not races:
        click.echo("No races found.")
        return

    click.echo("Races:")
    for r in races:
        processed = "✅ Scored" if r.results_processed else "⚪ Not scored"
        predictions = r.predictions.count()
        click.echo(
            f"  [{r.id}] {r.season} R{r.round} {r.race_name} - "
            f"{r.format_race_time_local()} - {r.status} - {processed} - "
            f"{predictions} predictions"
        )


@race.command("import")
@click.argument("season")
@with_appcontext
def import_races(season):
    """Create or update a season's races from the results API"""
    try:
        created, updated = import_season_schedule(
            season, ResultsSync(app.config.get("RESULTS_API_BASE_URL"))
        )
        click.echo(f"✅ Season {season}: {created} races created, {updated} updated")
    except ResultsSyncError as e:
        click.echo(f"❌ Error fetching schedule: {str(e)}")
    except SQLAlchemyError as e:
        db.session.rollback()
        click.echo(f"❌ Database error importing races: {str(e)}")


@race.command("set-h2h")
@click.argument("race_id", type=int)
@click.option("--drivers", nargs=2, help="Driver ids for the driver matchup")
@click.option("--teams", nargs=2, help="Constructor ids for the team matchup")
@with_appcontext
def set_head_to_head(race_id, drivers, teams):
    """Configure a race's head-to-head matchups"""
    race = _get_race(race_id)
    if not race:
        return

    if drivers:
        race.h2h_driver1_id, race.h2h_driver2_id = drivers
    if teams:
        race.h2h_team1_id, race.h2h_team2_id = teams

    try:
        db.session.commit()
        click.echo(f"✅ Head-to-head for race {race_id}: {race.head_to_head_config()}")
    except SQLAlchemyError as e:
        db.session.rollback()
        click.echo(f"❌ Database error saving head-to-head: {str(e)}")


@cli.command()
@click.option("--limit", type=int, default=20, help="Number of users to show")
@with_appcontext
def leaderboard(limit):
    """Show the leaderboard"""
    rows = User.get_leaderboard(limit=limit)
    if not rows:
        click.echo("No users found.")
        return

    for row in rows:
        click.echo(
            f"  {row['rank']:>3}. {row['display_name']:<20} "
            f"{row['total_points']:>4} pts ({row['correct_predictions']} correct)"
        )


# User Management Commands
@cli.group()
def user():
    """User management commands"""
    pass


@user.command("create-admin")
@click.argument("username")
@click.argument("email")
@click.argument("password")
@click.option("--display-name", help="Display name")
@with_appcontext
def create_admin(username, email, password, display_name=None):
    """Create an admin user"""
    try:
        existing = User.query.filter(
            (User.username == username) | (User.email == email)
        ).first()

        if existing:
            click.echo(
                f"❌ User with username '{username}' or email '{email}' already exists!"
            )
            return

        user = User(
            username=username,
            email=email,
            display_name=display_name,
            is_active=True,
            is_admin=True,
        )
        user.set_password(password)

        db.session.add(user)
        db.session.commit()

        click.echo(f"✅ Created admin user '{username}' ({email})")

    except SQLAlchemyError as e:
        db.session.rollback()
        click.echo(f"❌ Error creating user: {str(e)}")


# Database Commands
@cli.group()
def db_cmd():
    """Database commands"""
    pass


@db_cmd.command()
@with_appcontext
def init_db():
    """Initialize database tables"""
    try:
        db.create_all()
        click.echo("✅ Database tables created successfully!")
    except SQLAlchemyError as e:
        click.echo(f"❌ Error initializing database: {str(e)}")


@cli.command()
@with_appcontext
def status():
    """Show application status"""
    click.echo("🏎️  F1 Tipping Application Status")
    click.echo("=" * 40)

    try:
        db.session.execute(text("SELECT 1"))
        click.echo("✅ Database: Connected")
    except SQLAlchemyError as e:
        click.echo(f"❌ Database: Error - {str(e)}")
        return

    user_count = User.query.filter_by(is_active=True).count()
    click.echo(f"👥 Active Users: {user_count}")

    race_count = Race.query.count()
    scored_count = Race.query.filter_by(results_processed=True).count()
    click.echo(f"🏁 Races: {scored_count}/{race_count} scored")

    pending = Prediction.query.filter(Prediction.points.is_(None)).count()
    click.echo(f"📝 Unscored predictions: {pending}")

    cache_stats = get_cache_stats()
    click.echo(f"💾 Cache: {cache_stats['type']} ({cache_stats['timeout']}s)")

    awaiting = Race.get_races_awaiting_results(app.config.get("RESULTS_SETTLE_HOURS", 3))
    if awaiting:
        click.echo(f"⏳ Awaiting results: {', '.join(r.race_name for r in awaiting)}")


if __name__ == "__main__":
    with app.app_context():
        cli()
