import click

from .services import ledger, payment_sessions


def register_commands(app):
    @app.cli.command("purge-sessions")
    def purge_sessions():
        """Delete unconsumed payment sessions past PAYMENT_SESSION_TTL."""
        purged = payment_sessions.purge_expired()
        click.echo(f"Purged {purged} payment sessions")

    @app.cli.command("set-tier")
    @click.argument("owner_id")
    @click.argument("tier")
    def set_tier(owner_id, tier):
        """Administrative tier override for OWNER_ID."""
        subscription = ledger.get(owner_id)
        if subscription is None:
            raise click.ClickException(f"No subscription for {owner_id}")
        subscription = ledger.override_tier(owner_id, subscription.id, tier)
        click.echo(f"{owner_id}: {subscription.tier} ({subscription.usage_count}/{subscription.usage_limit})")

    @app.cli.command("set-status")
    @click.argument("owner_id")
    @click.argument("status")
    def set_status(owner_id, status):
        subscription = ledger.set_status(owner_id, status)
        click.echo(f"{owner_id}: {subscription.status}")
