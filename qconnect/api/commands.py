"""Maintenance commands registered on the Flask CLI (`flask --app qconnect.api ...`)."""
import click

from qconnect.models import refresh_tokens


def register_commands(app):
    @app.cli.command("purge-tokens")
    def purge_tokens():
        """Delete expired refresh tokens."""
        removed = refresh_tokens.purge_expired()
        click.echo(f"purged {removed} expired refresh token(s)")
