import click
import re
from sqlalchemy.exc import SQLAlchemyError
from app.core.database import SessionLocal
from app.core.errors import EngineError
from app.models.subscription import Subscription, SubscriptionStatus
from app.models.usage_record import UsageRecord
from app.services.plan_catalog import is_known_tier, plan_for, resolve_limit, is_unlimited
from app.services.subscription_service import SubscriptionService
from app.services.usage_ledger import UsageLedger, month_key
import logging

logger = logging.getLogger(__name__)

MONTH_PATTERN = re.compile(r"^\d{4}-\d{2}$")


@click.group()
def cli():
    """Draftwell CLI commands"""
    pass


@cli.command()
@click.option('--id', 'user_id', required=True, help='User id (Firebase UID)')
@click.option('--month', required=False, help='Usage month (YYYY-MM). Defaults to current month')
def usage(user_id, month):
    """Show plan and AI rating usage for a user"""
    month = month or month_key()
    db = SessionLocal()
    try:
        subscription = db.query(Subscription).filter(Subscription.user_id == user_id).first()
        if not subscription:
            click.echo(f"User {user_id} has no subscription (free default on first use)")
        else:
            plan = plan_for(subscription.plan_tier)
            limit = resolve_limit(subscription, plan)
            shown = "unlimited" if is_unlimited(limit) else limit
            click.echo(f"User {user_id}: plan {plan.id} ({subscription.status.value}), limit {shown}")

        record = db.query(UsageRecord).filter(UsageRecord.user_id == user_id, UsageRecord.month == month).first()
        click.echo(f"  {month}: {record.ratings_used if record else 0} ratings used")
    except SQLAlchemyError as e:
        logger.error(f"CLI error: {e}")
        click.echo(f"❌ Error: {e}", err=True)
    finally:
        db.close()


@cli.command()
@click.option('--id', 'user_id', required=True, help='User id (Firebase UID)')
@click.option('--month', required=False, help='Usage month (YYYY-MM). Defaults to current month')
@click.option('-y', '--yes', 'confirm', is_flag=True, help='Skip confirmation')
@click.option('--dry-run', 'dry_run', is_flag=True, help='Show what would be changed without committing')
def reset_usage(user_id, month, confirm, dry_run):
    """Reset a user's AI rating count for a month to 0"""
    if month and not MONTH_PATTERN.match(month):
        click.echo("❌ Invalid month format. Use YYYY-MM", err=True)
        return
    month = month or month_key()
    action_desc = f"reset {month} usage for {user_id}"

    db = SessionLocal()
    try:
        record = db.query(UsageRecord).filter(UsageRecord.user_id == user_id, UsageRecord.month == month).first()
        if dry_run:
            click.echo(f"🔍 Dry run: would {action_desc}")
            if not record:
                click.echo("No usage record would be affected")
            else:
                click.echo(f"  - month: {record.month}, ratings_used: {record.ratings_used}")
            return

        if not confirm:
            try:
                if not click.confirm(f"Are you sure you want to {action_desc}?", default=False):
                    click.echo("Aborted")
                    return
            except click.exceptions.Abort:
                click.echo("\nAborted")
                return

        rows = UsageLedger().reset(db, user_id, month)
        db.commit()
        click.echo(f"✓ Reset {rows} usage rows for {user_id}")
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"CLI error: {e}")
        click.echo(f"❌ Error: {e}", err=True)
    finally:
        db.close()


@cli.command()
@click.option('--id', 'user_id', required=True, help='User id (Firebase UID)')
@click.option('--tier', required=True, help='Plan tier (free, starter, pro)')
@click.option('--status', 'status_value', default=SubscriptionStatus.ACTIVE.value,
              type=click.Choice([s.value for s in SubscriptionStatus]), help='Subscription status')
def set_plan(user_id, tier, status_value):
    """Manually move a user to a plan (support override, bypasses billing)"""
    if not is_known_tier(tier):
        click.echo(f"❌ Unknown plan tier: {tier}", err=True)
        return

    db = SessionLocal()
    try:
        subscription = SubscriptionService().apply_plan_change(
            db, user_id, tier, status=SubscriptionStatus(status_value))
        click.echo(f"✓ {user_id} is now on {subscription.plan_tier} ({subscription.status.value})")
    except EngineError as e:
        logger.error(f"CLI error: {e.message}")
        click.echo(f"❌ Error: {e.message}", err=True)
    finally:
        db.close()


if __name__ == '__main__':
    cli()
