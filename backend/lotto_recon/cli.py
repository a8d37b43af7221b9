# Overview: Flask CLI command groups for bootstrap, reference seeding, and day close.

# backend/lotto_recon/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db [--store-name "Main Store" --store-code MAIN --timezone America/New_York]
#   Create tables (idempotent) and a default store if none exists.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Reference seeding:
# - python -m flask lottery add-game --code G1 --name "Lucky 7s" --price-cents 200 --pack-size 100 --rate-bps 500
# - python -m flask lottery add-box --store-id 1 --label B1
# - python -m flask lottery activate-pack --store-id 1 --pack-number P-0001 --game-code G1 --box-label B1
#
# Day close:
# - python -m flask lottery preview --store-id 1 --date 2024-03-01
# - python -m flask lottery flag-missing --store-id 1 --date 2024-03-01
# - python -m flask lottery post --store-id 1 --date 2024-03-01 --user-id 7 --yes
#   Irreversible: writes the GL entry set. Without --yes you are prompted.

import json

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Store
from .services import dayclose_service, pack_service, posting_service
from .services.concurrency import ConcurrencyConflictError, commit_or_conflict
from .services.posting_service import PostingBlockedError
from .services.settings_service import SettingsError
from .time_utils import parse_business_date
from .validation import ConflictError, NotFoundError, ValidationError


def _business_date(value):
    try:
        return parse_business_date(value)
    except ValueError:
        raise click.BadParameter(f"'{value}' is not a YYYY-MM-DD date", param_hint="--date")


def _fail(exc: Exception):
    db.session.rollback()
    raise click.ClickException(str(exc))


def _format_cents(cents) -> str:
    if cents is None:
        return "-"
    sign = "-" if cents < 0 else ""
    return f"{sign}${abs(cents) // 100:,}.{abs(cents) % 100:02d}"


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@click.option('--store-name', default='Main Store', help='Default store name')
@click.option('--store-code', default='MAIN', help='Default store code')
@click.option('--timezone', 'tz_name', default='UTC', help='IANA timezone for business dates')
@with_appcontext
def init_db(store_name, store_code, tz_name):
    """Create all tables and a default store (idempotent)."""
    click.echo("BUILD  Creating tables...")
    db.create_all()

    store = db.session.query(Store).first()
    if not store:
        store = Store(name=store_name, code=store_code, timezone=tz_name)
        db.session.add(store)
        db.session.commit()
        click.echo(f"PASS Created default store: {store.name} (ID: {store.id}, TZ: {store.timezone})")
    else:
        click.echo(f"PASS Using existing store: {store.name} (ID: {store.id})")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete. Run 'python -m flask system init-db' to create a store.")


@click.group('lottery')
def lottery_group():
    """Lottery reference seeding and day-close commands."""


@lottery_group.command('add-game')
@click.option('--code', required=True, help='Game code')
@click.option('--name', required=True, help='Display name')
@click.option('--price-cents', type=int, required=True, help='Ticket price in cents')
@click.option('--pack-size', type=int, required=True, help='Tickets per pack')
@click.option('--rate-bps', type=int, required=True, help='Instant commission rate (basis points)')
@with_appcontext
def add_game(code, name, price_cents, pack_size, rate_bps):
    """Create a lottery game."""
    try:
        game = pack_service.create_game(code, name, price_cents, pack_size, rate_bps)
        db.session.commit()
    except (ValidationError, ConflictError) as e:
        _fail(e)
    click.echo(f"PASS Game {game.game_code} created (ID: {game.id})")


@lottery_group.command('add-box')
@click.option('--store-id', type=int, required=True)
@click.option('--label', required=True, help='Box label, unique per store')
@click.option('--description', default=None)
@with_appcontext
def add_box(store_id, label, description):
    """Create a dispenser box in a store."""
    try:
        box = pack_service.create_box(store_id, label, description)
        db.session.commit()
    except (ValidationError, ConflictError, NotFoundError) as e:
        _fail(e)
    click.echo(f"PASS Box {box.label} created in store {store_id} (ID: {box.id})")


@lottery_group.command('activate-pack')
@click.option('--store-id', type=int, required=True)
@click.option('--pack-number', required=True)
@click.option('--game-code', required=True)
@click.option('--box-label', required=True)
@click.option('--start-ticket', type=int, default=0, show_default=True)
@click.option('--user-id', type=int, default=None, help='Acting employee')
@click.option('--retire-previous', is_flag=True, help='Displace a still-active pack in the box')
@with_appcontext
def activate_pack(store_id, pack_number, game_code, box_label, start_ticket, user_id, retire_previous):
    """Activate a pack and place it in a box."""
    try:
        assignment = pack_service.activate_pack(
            store_id,
            pack_number,
            game_code,
            box_label,
            start_ticket=start_ticket,
            actor_user_id=user_id,
            retire_previous=retire_previous,
        )
        pack_label = assignment.pack.pack_number
        warnings = list(assignment.warnings)
        commit_or_conflict(description="activate pack")
    except (ValidationError, ConflictError, NotFoundError, ConcurrencyConflictError) as e:
        _fail(e)

    click.echo(f"PASS Pack {pack_label} active in box {box_label}")
    for warning in warnings:
        click.echo(f"WARN {warning}")


@lottery_group.command('preview')
@click.option('--store-id', type=int, required=True)
@click.option('--date', 'day', required=True, help='Business date (YYYY-MM-DD)')
@click.option('--json', 'as_json', is_flag=True, help='Print the raw summary')
@with_appcontext
def preview(store_id, day, as_json):
    """Show the day-close summary without writing anything."""
    business_date = _business_date(day)
    try:
        summary = dayclose_service.preview_day_close(store_id, business_date)
    except (NotFoundError, SettingsError) as e:
        raise click.ClickException(str(e))

    if as_json:
        click.echo(json.dumps(summary.to_dict(), indent=2, sort_keys=True))
        return

    click.echo(f"Lottery day {business_date.isoformat()} (store {store_id})")
    click.echo("\nInstant:")
    if not summary.instant_by_game:
        click.echo("  (no readings)")
    for game in summary.instant_by_game:
        click.echo(
            f"  {game.game_code:<10} {game.tickets_sold:>5} sold  "
            f"sales {_format_cents(game.face_sales_cents):>12}  "
            f"commission {_format_cents(game.commission_cents):>10}"
        )

    click.echo("\nDraw/online:")
    if summary.draw_totals is None:
        click.echo("  (no entry)")
    else:
        draw = summary.draw_totals
        click.echo(f"  net sale {_format_cents(draw.net_sale_cents)}  commission {_format_cents(draw.commission_cents)}")

    click.echo(f"\nTotal commission: {_format_cents(summary.total_commission_cents)}")

    for anomaly in summary.anomalies:
        click.echo(f"ANOMALY [{anomaly['severity']}] #{anomaly['id']} {anomaly['type']}: {anomaly['detail']}")
    for warning in summary.warnings:
        click.echo(f"WARN {warning}")

    if summary.can_post:
        click.echo("PASS Ready to post")
    else:
        for reason in summary.blocking_reasons:
            click.echo(f"BLOCKED {reason}")


@lottery_group.command('flag-missing')
@click.option('--store-id', type=int, required=True)
@click.option('--date', 'day', required=True, help='Business date (YYYY-MM-DD)')
@with_appcontext
def flag_missing(store_id, day):
    """Raise missing_reading anomalies for active packs not read on the date."""
    business_date = _business_date(day)
    try:
        pack_service.get_store(store_id)
        raised = dayclose_service.flag_missing_readings(store_id, business_date)
        count = len(raised)
        commit_or_conflict(description="flag missing readings")
    except (NotFoundError, SettingsError, ConcurrencyConflictError) as e:
        _fail(e)
    click.echo(f"PASS {count} missing_reading anomaly(ies) raised")


@lottery_group.command('post')
@click.option('--store-id', type=int, required=True)
@click.option('--date', 'day', required=True, help='Business date (YYYY-MM-DD)')
@click.option('--user-id', type=int, required=True, help='Posting employee')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def post(store_id, day, user_id, yes):
    """
    Post the lottery day to the General Ledger.

    Irreversible from the store's side; re-posting supersedes the
    previous revision.
    """
    business_date = _business_date(day)
    if not yes:
        click.confirm(
            f"WARN Post lottery day {business_date.isoformat()} for store {store_id} to the General Ledger?",
            abort=True,
        )

    try:
        result = posting_service.post_day_close(store_id, business_date, user_id)
        revision = result.posting.revision
        total = result.posting.total_commission_cents
        superseded = result.superseded
        warnings = list(result.warnings)
        commit_or_conflict(description="post lottery day")
    except PostingBlockedError as e:
        db.session.rollback()
        for anomaly in e.blocking_anomalies:
            click.echo(f"BLOCKING #{anomaly['id']} {anomaly['type']}: {anomaly['detail']}")
        for reason in e.reasons:
            click.echo(f"BLOCKED {reason}")
        raise click.ClickException(str(e))
    except (ValidationError, NotFoundError, SettingsError, ConcurrencyConflictError) as e:
        _fail(e)

    for warning in warnings:
        click.echo(f"WARN {warning}")
    if superseded:
        click.echo(f"WARN Superseded the previous posting (now revision {revision})")
    click.echo(f"PASS Posted {business_date.isoformat()}: total commission {_format_cents(total)}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(lottery_group)
