import click

from .components import build_services
from .errors import TransferError
from .extensions import db
from .services.movements import fetch_movements


def register_cli(app):
    @app.cli.command("compose-transfer-form")
    @click.argument("movement_ids", nargs=-1, type=int, required=True)
    def compose_transfer_form(movement_ids) -> None:
        """Render and store the transfer form for MOVEMENT_IDS (first id is the primary)."""
        movements = fetch_movements(db.session, movement_ids)
        missing = sorted(set(movement_ids) - {movement.id for movement in movements})
        if missing:
            raise click.ClickException(
                "Unknown movement id(s): " + ", ".join(str(value) for value in missing)
            )

        try:
            composed = build_services().composer.compose(movements)
            db.session.commit()
        except TransferError as exc:
            db.session.rollback()
            raise click.ClickException(exc.message) from exc

        click.echo(f"Stored {composed.key}")
        click.echo(f"Form URL: {composed.url}")
        click.echo(f"Signing URL: {composed.token_url}")

    @app.cli.command("issue-signing-token")
    @click.argument("movement_id", type=int)
    @click.option("--ttl-days", type=int, default=None, help="Override SIGNING_TOKEN_TTL_DAYS.")
    def issue_signing_token(movement_id, ttl_days) -> None:
        """Print the live signing link for MOVEMENT_ID, minting one if needed."""
        if not fetch_movements(db.session, [movement_id]):
            raise click.ClickException(f"Unknown movement id: {movement_id}")
        try:
            issued = build_services().issuer.ensure(movement_id, ttl_days)
            db.session.commit()
        except TransferError as exc:
            db.session.rollback()
            raise click.ClickException(exc.message) from exc
        click.echo(issued.url)
        click.echo(f"Expires {issued.expires_at.isoformat(timespec='seconds')}")

    @app.cli.command("prune-signing-tokens")
    @click.option(
        "--older-than-days",
        type=click.IntRange(min=0),
        default=90,
        show_default=True,
        help="Only delete tokens that expired at least this many days ago.",
    )
    def prune_signing_tokens(older_than_days) -> None:
        """Delete long-expired public signing tokens."""
        try:
            removed = build_services().issuer.prune_expired(older_than_days=older_than_days)
            db.session.commit()
        except TransferError as exc:
            db.session.rollback()
            raise click.ClickException(exc.message) from exc
        click.echo(f"Removed {removed} expired signing token(s).")
