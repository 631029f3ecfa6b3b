"""
Quote Budget CLI Commands.

Usage:
    quote-budget totals QUOTE_ID [--work] [--json]
    quote-budget sync-status
    quote-budget flush-sync
    quote-budget init-db
    quote-budget serve --port 8000
"""
import json
import logging

import click

from quote_budget.config import get_config
from quote_budget.domain.entities.quote_settings import get_default_settings
from quote_budget.domain.exceptions import PersistenceError
from quote_budget.domain.services import DualBudgetCoordinator
from quote_budget.infrastructure import OfflineSyncQueue, PersistenceGateway
from quote_budget.models import get_db, init_db

logger = logging.getLogger(__name__)


def _sync_queue() -> OfflineSyncQueue:
    return OfflineSyncQueue(get_config().sync_queue_path)


@click.group()
@click.version_option(version='1.0.0')
@click.option('--verbose', '-v', is_flag=True, help='Enable debug logging')
def cli(verbose: bool):
    """Quote budget engine management commands."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


@cli.command()
@click.argument('quote_id')
@click.option('--work', is_flag=True, help='Use the work budget (priced on actual costs)')
@click.option('--json', 'as_json', is_flag=True, help='Print raw JSON')
def totals(quote_id: str, work: bool, as_json: bool):
    """Print the totals of a quote budget."""
    db = next(get_db())
    try:
        gateway = PersistenceGateway(db, _sync_queue())
        coordinator = DualBudgetCoordinator(quote_id, gateway)
        if not coordinator.load():
            raise click.ClickException(f"Could not load budgets of quote {quote_id}")

        if work and not coordinator.is_work_budget_active:
            click.echo(click.style(f"Quote {quote_id} has no work budget", fg='yellow'))

        result = coordinator.compute_totals(get_default_settings(), work_budget=work)
    finally:
        db.close()

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    label = "Work budget" if work else "Budget"
    click.echo(click.style(f"{label} of quote {quote_id}", fg='cyan', bold=True))
    click.echo(f"  Base cost:       {result.base_cost:>14,.2f}")
    for rate_id, amount in sorted(result.social_charges_by_type.items()):
        click.echo(f"    charges {rate_id:<7}{amount:>14,.2f}")
    click.echo(f"  Social charges:  {result.total_social_charges:>14,.2f}")
    click.echo(f"  Total cost:      {result.total_cost:>14,.2f}")
    click.echo(f"  Agency:          {result.agency:>14,.2f}  ({result.agency_percent:.2f}%)")
    click.echo(f"  Margin:          {result.margin:>14,.2f}  ({result.margin_percent:.2f}%)")
    click.echo(click.style(f"  Grand total:     {result.grand_total:>14,.2f}", bold=True))


@cli.command('sync-status')
def sync_status():
    """Show operations waiting in the offline queue."""
    queue = _sync_queue()
    status = queue.status()
    click.echo(f"Pending syncs: {status.pending_syncs}")
    for sync in queue.pending():
        click.echo(f"  - {sync.id} {sync.type} {sync.operation} quote={sync.data.get('quoteId')}")


@cli.command('flush-sync')
def flush_sync():
    """Replay the offline queue against the database."""
    db = next(get_db())
    try:
        gateway = PersistenceGateway(db, _sync_queue(), online=True)
        pending = len(gateway.sync_queue)
        replayed = gateway.flush()
    except PersistenceError as e:
        raise click.ClickException(e.message)
    finally:
        db.close()

    color = 'green' if replayed == pending else 'yellow'
    click.echo(click.style(f"Replayed {replayed} of {pending} queued operations", fg=color))


@cli.command('init-db')
def init_db_command():
    """Create the database tables."""
    init_db()
    click.echo(click.style("Database initialized", fg='green'))


@cli.command()
@click.option('--port', default=8000, help='Port to listen on')
@click.option('--host', default='127.0.0.1', help='Host to bind to')
@click.option('--reload', is_flag=True, help='Enable auto-reload')
def serve(port: int, host: str, reload: bool):
    """Start the API server."""
    import uvicorn

    click.echo(click.style('Quote Budget Engine - API Server', fg='cyan', bold=True))
    click.echo(f"Starting server at http://{host}:{port}")
    uvicorn.run("quote_budget.main:app", host=host, port=port, reload=reload)


if __name__ == '__main__':
    cli()
