import click
from academy.core.database import SessionLocal
import academy.models  # noqa: F401  configures relationship mappers
from academy.models.user import User
from academy.services.auth_service import AuthService
from academy.services.scheduler_service import SchedulerService
from academy.services.subscription_service import SubscriptionService
import logging

logger = logging.getLogger(__name__)

@click.group()
@click.option('-v', '--verbose', is_flag=True, help='Log service output to stderr')
def cli(verbose):
    """Trading Academy CLI commands"""
    if verbose:
        logging.basicConfig(level=logging.INFO)

@cli.command()
def run_scheduler():
    """Run the expiry and reminder passes, same as the cron endpoint"""
    db = SessionLocal()
    try:
        result = SchedulerService().run_scheduled_tasks(db)
        if result['skipped']:
            click.echo("⏭ Another scheduler run holds the lock, nothing done")
        else:
            click.echo(f"✓ Downgraded {result['expired']} expired subscriptions, sent {result['reminders']} reminders")
    except Exception as e:
        db.rollback()
        logger.error(f"CLI error: {e}")
        click.echo(f"❌ Error: {e}", err=True)
    finally:
        db.close()

@cli.command()
def send_reminders():
    """Email subscribers whose period ends within the reminder window"""
    db = SessionLocal()
    try:
        sent = SchedulerService().send_expiration_reminders(db)
        click.echo(f"✓ Sent {sent} expiration reminders")
    except Exception as e:
        db.rollback()
        logger.error(f"CLI error: {e}")
        click.echo(f"❌ Error: {e}", err=True)
    finally:
        db.close()

@cli.command()
def check_expired():
    """Expire lapsed subscriptions and move their users to the free plan"""
    db = SessionLocal()
    try:
        expired = SchedulerService().check_expired_subscriptions(db)
        click.echo(f"✓ Downgraded {expired} expired subscriptions")
    except Exception as e:
        db.rollback()
        logger.error(f"CLI error: {e}")
        click.echo(f"❌ Error: {e}", err=True)
    finally:
        db.close()

@cli.command()
def seed_plans():
    """Insert the default plan catalog when the plans table is empty"""
    db = SessionLocal()
    try:
        created = SubscriptionService().seed_plans_if_empty(db)
        if created:
            click.echo(f"✓ Seeded {created} plans")
        else:
            click.echo("✓ Plans already present, nothing seeded")
    except Exception as e:
        db.rollback()
        logger.error(f"CLI error: {e}")
        click.echo(f"❌ Error: {e}", err=True)
    finally:
        db.close()

@cli.command()
@click.option('--email', required=True, help='User email')
@click.option('--set', 'set_admin', is_flag=True, help='Grant admin rights')
@click.option('--remove', 'remove_admin', is_flag=True, help='Revoke admin rights')
def admin(email, set_admin, remove_admin):
    """Show or change a user's admin flag"""
    db = SessionLocal()
    try:
        if set_admin and remove_admin:
            click.echo("❌ Use either --set or --remove, not both", err=True)
            return

        if set_admin or remove_admin:
            user = AuthService().set_admin(db, email, is_admin=set_admin)
            state = "granted" if user.is_admin else "revoked"
            click.echo(f"✓ Admin rights {state} for {user.email}")
            click.echo("  The user must sign in again for the change to reach their session")
            return

        user = db.query(User).filter(User.email == email.strip().lower()).first()
        if not user:
            click.echo(f"❌ User not found: {email}", err=True)
            return
        status = "an admin" if user.is_admin else "not an admin"
        click.echo(f"User {user.email} is {status}")
    except Exception as e:
        db.rollback()
        logger.error(f"CLI error: {e}")
        click.echo(f"❌ Error: {e}", err=True)
    finally:
        db.close()

@cli.command()
@click.option('--email', required=True, help='User email')
def subscription(email):
    """Show a user's current subscription"""
    db = SessionLocal()
    try:
        user = db.query(User).filter(User.email == email.strip().lower()).first()
        if not user:
            click.echo(f"❌ User not found: {email}", err=True)
            return

        current = SubscriptionService().get_current_subscription(db, user.id)
        plan = current['plan'] or {}
        click.echo(f"\nSubscription for {user.email}:\n")
        click.echo(f"  Plan:    {plan.get('display_name', '<unknown>')} ({plan.get('billing_cycle', '-')})")
        click.echo(f"  Status:  {current['status']}")
        click.echo(f"  Period:  {current['current_period_start'] or '-'} -> {current['current_period_end'] or 'never'}")
        click.echo(f"  Method:  {current['payment_method'] or '-'}")
    except LookupError as e:
        click.echo(f"❌ {e}", err=True)
    except Exception as e:
        db.rollback()
        logger.error(f"CLI error: {e}")
        click.echo(f"❌ Error: {e}", err=True)
    finally:
        db.close()

if __name__ == '__main__':
    cli()
