#!/usr/bin/env python3
"""
Round Pick'em Management CLI

Command-line management for rounds, scoring, seasons and housekeeping.
"""

import logging

import click
from flask.cli import with_appcontext
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from roundpicks import create_app, db
from roundpicks.errors import PickemError
from roundpicks.models import AccessToken, Admin, Participant, PointSchedule, Round, Season
from roundpicks.services import (
    leaderboard_service,
    round_service,
    scoring_service,
    season_service,
    token_service,
)

app = create_app()


def _fail(action, error):
    db.session.rollback()
    if isinstance(error, PickemError):
        click.echo(f"❌ {action} refused: {error.detail}")
    else:
        click.echo(f"❌ Error during {action}: {str(error)}")
        logging.error(f"{action} failed: {error}")


@click.group()
def cli():
    """Round Pick'em Management CLI"""
    pass


# Season Commands
@cli.group()
def season():
    """Season management commands"""
    pass


@season.command()
@click.argument("name")
@click.option("--year", type=int, help="Season year")
@with_appcontext
def create(name, year):
    """Create a new season"""
    try:
        new_season = Season(name=name, year=year)
        db.session.add(new_season)
        db.session.commit()
        click.echo(f"✅ Created season {new_season.id}: {name}")
    except SQLAlchemyError as e:
        _fail("season creation", e)


@season.command("add-participant")
@click.argument("season_id", type=int)
@click.argument("name")
@click.argument("email")
@with_appcontext
def add_participant(season_id, name, email):
    """Add a participant to a season (emails may be shared)"""
    target = db.session.get(Season, season_id)
    if not target:
        click.echo(f"❌ Season {season_id} not found!")
        return

    try:
        participant = Participant(name=name, email=email.strip())
        target.participants.append(participant)
        db.session.commit()
        click.echo(f"✅ Added {name} <{email}> to {target.name}")
    except SQLAlchemyError as e:
        _fail("adding participant", e)


@season.command()
@click.argument("season_id", type=int)
@with_appcontext
def recompute(season_id):
    """Recompute every score in a season"""
    try:
        written = scoring_service.recompute_season(season_id)
        click.echo(f"✅ Season {season_id} rescored ({written} score records)")
    except (PickemError, ValueError) as e:
        _fail("recompute", e)


@season.command()
@click.argument("season_id", type=int)
@with_appcontext
def end(season_id):
    """End a season, freezing its scores"""
    target = db.session.get(Season, season_id)
    if not target:
        click.echo(f"❌ Season {season_id} not found!")
        return

    try:
        season_service.end_season(target)
        click.echo(f"✅ Season {season_id} ended")
        for entry in leaderboard_service.assemble(target)[:5]:
            click.echo(f"   {entry['rank']}. {entry['name']} - {entry['total']} pts")
    except PickemError as e:
        _fail("ending season", e)


@season.command()
@click.argument("season_id", type=int)
@with_appcontext
def reopen(season_id):
    """Reopen an ended season"""
    target = db.session.get(Season, season_id)
    if not target:
        click.echo(f"❌ Season {season_id} not found!")
        return

    try:
        season_service.reopen_season(target)
        click.echo(f"✅ Season {season_id} reopened")
    except PickemError as e:
        _fail("reopening season", e)


# Round Commands
@cli.group("round")
def round_cmd():
    """Round lifecycle commands"""
    pass


@round_cmd.command("lock-expired")
@with_appcontext
def lock_expired():
    """Lock active rounds whose lock time has passed"""
    locked = round_service.lock_expired_rounds()
    click.echo(f"✅ Locked {len(locked)} round(s) {locked if locked else ''}")


@round_cmd.command("activate")
@click.argument("round_id", type=int)
@with_appcontext
def activate(round_id):
    """Open a draft round and email pick links"""
    target = db.session.get(Round, round_id)
    if not target:
        click.echo(f"❌ Round {round_id} not found!")
        return

    try:
        delivery = round_service.activate_round(target)
        click.echo(
            f"✅ Round {round_id} active: {delivery['links_issued']} link(s), "
            f"{delivery['emails_failed']} delivery failure(s)"
        )
    except PickemError as e:
        _fail("activation", e)


@round_cmd.command()
@click.argument("round_id", type=int)
@click.option("--first", multiple=True, required=True, help="1st place (repeat for ties)")
@click.option("--second", multiple=True)
@click.option("--third", multiple=True)
@click.option("--fourth", multiple=True)
@click.option("--fifth", multiple=True)
@with_appcontext
def complete(round_id, first, second, third, fourth, fifth):
    """Record a round's outcome and rescore its season"""
    target = db.session.get(Round, round_id)
    if not target:
        click.echo(f"❌ Round {round_id} not found!")
        return

    outcome = [list(first), list(second), list(third), list(fourth), list(fifth)]
    try:
        round_service.complete_round(target, outcome)
        click.echo(f"✅ Round {round_id} completed")
    except PickemError as e:
        _fail("completion", e)


# Point Schedule Commands
@cli.group()
def points():
    """Point schedule commands"""
    pass


@points.command()
@with_appcontext
def show():
    """Show the current point schedule"""
    schedule = PointSchedule.current()
    db.session.commit()
    click.echo(f"📊 Point schedule v{schedule.version}")
    for tier, value in schedule.as_dict().items():
        click.echo(f"   {tier:<11} {value}")


@points.command("set")
@click.option("--first", type=int, required=True)
@click.option("--second", type=int, required=True)
@click.option("--third", type=int, required=True)
@click.option("--fourth", type=int, required=True)
@click.option("--fifth", type=int, required=True)
@click.option("--sixth-plus", type=int, required=True)
@with_appcontext
def set_points(first, second, third, fourth, fifth, sixth_plus):
    """Save a new schedule and rescore all open seasons"""
    values = {
        "first": first,
        "second": second,
        "third": third,
        "fourth": fourth,
        "fifth": fifth,
        "sixth_plus": sixth_plus,
    }
    try:
        schedule = scoring_service.update_point_schedule(values)
        click.echo(f"✅ Point schedule v{schedule.version} saved; open seasons rescored")
    except PickemError as e:
        _fail("point schedule update", e)


# Token Commands
@cli.group()
def tokens():
    """Magic-link token housekeeping"""
    pass


@tokens.command()
@with_appcontext
def purge():
    """Delete expired and used tokens"""
    removed = token_service.purge_expired_tokens()
    click.echo(f"✅ Purged {removed} token(s)")


# Admin Commands
@cli.group()
def admin():
    """Administrator account commands"""
    pass


@admin.command("create")
@click.argument("name")
@click.argument("email")
@with_appcontext
def create_admin(name, email):
    """Create an administrator who signs in by magic link"""
    try:
        db.session.add(Admin(name=name, email=email.strip().lower()))
        db.session.commit()
        click.echo(f"✅ Created admin {email}")
    except IntegrityError:
        db.session.rollback()
        click.echo(f"❌ Admin {email} already exists!")


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
        PointSchedule.current()
        db.session.commit()
        click.echo("✅ Database tables created successfully!")
    except SQLAlchemyError as e:
        click.echo(f"❌ Error initializing database: {str(e)}")


@cli.command()
@with_appcontext
def status():
    """Show application status"""
    click.echo("🏁 Round Pick'em Status")
    click.echo("=" * 40)

    open_seasons = Season.query.filter(Season.ended_at.is_(None)).count()
    click.echo(f"📅 Open seasons: {open_seasons}")

    for state in Round.STATUSES:
        click.echo(f"   {state:<10} rounds: {Round.query.filter_by(status=state).count()}")

    outstanding = AccessToken.query.filter_by(kind=AccessToken.KIND_PICK).count()
    click.echo(f"🔗 Outstanding pick links: {outstanding}")

    schedule = PointSchedule.query.order_by(PointSchedule.version.desc()).first()
    if schedule:
        click.echo(f"📊 Point schedule: v{schedule.version} {schedule.as_dict()}")


if __name__ == "__main__":
    with app.app_context():
        cli()
