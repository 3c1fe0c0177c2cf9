from camphq import create_app
from camphq.seed import seed_data
from camphq.services import pickup, waitlist
from flask.cli import with_appcontext
from flask_migrate import upgrade, migrate, init
import click

app = create_app()

@app.cli.command("db-init")
@with_appcontext
def db_init():
    """Initializes migrations directory"""
    init()

@app.cli.command("db-migrate")
@with_appcontext
def db_migrate():
    """Creates a new migration"""
    migrate()

@app.cli.command("db-upgrade")
@with_appcontext
def db_upgrade():
    """Applies migrations"""
    upgrade()

@app.cli.command("seed")
@with_appcontext
def seed():
    """Loads roles, staff accounts and a sample camp"""
    seed_data()

@app.cli.command("expire-offers")
@with_appcontext
def expire_offers():
    """Expires stale waitlist offers and offers free slots to the queue"""
    outcome = waitlist.expire_stale_offers()
    click.echo(f"{outcome['expired']!r}")
    click.echo(f"{outcome['offers']!r}")

@app.cli.command("expire-pickup-tokens")
@with_appcontext
def expire_pickup_tokens():
    """Marks pickup tokens past their expiry as expired"""
    click.echo(f"Expired {pickup.expire_stale_tokens()} pickup token(s)")
