# commands.py

import click
from flask import current_app
from flask.cli import with_appcontext

from services.exceptions import TrackingError


@click.command('recompute-epc')
@click.option('--offer-id', default=None, help='Recompute a single offer instead of every active offer')
@with_appcontext
def recompute_epc(offer_id):
    """Rebuild cached offer EPC metrics from the click ledger"""
    epc_service = current_app.services.get('epc')

    if offer_id:
        offer_ids = [offer_id]
    else:
        offer_ids = [offer.id for offer in current_app.services.get('offer_repository').get_active_offers()]

    if not offer_ids:
        click.echo('No active offers to recompute.')
        return

    failures = 0
    for current_id in offer_ids:
        try:
            metrics = epc_service.update_epc(current_id)
            click.echo(f'{current_id}: epc={metrics.epc} clicks={metrics.total_clicks} '
                       f'conversions={metrics.total_conversions}')
        except TrackingError as e:
            failures += 1
            click.echo(f'{current_id}: failed ({e.code}) {e.message}', err=True)

    click.echo(f'Recomputed {len(offer_ids) - failures} of {len(offer_ids)} offers.')
    if failures:
        raise SystemExit(1)


@click.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet"""
    from extensions import db
    db.create_all()
    click.echo('Database tables created.')


def init_app(app):
    """Register commands with the Flask app"""
    app.cli.add_command(recompute_epc)
    app.cli.add_command(init_db)
