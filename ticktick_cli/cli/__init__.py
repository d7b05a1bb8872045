"""
Click CLI implementation for the TickTick CLI.

Only the ``auth`` command group lives here; task and project commands obtain
their bearer token through ``TokenManager.get_valid_token()``.
"""

import logging
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Optional

import click

from ticktick_cli import __version__
from ticktick_cli.oauth.config import OAuthConfig
from ticktick_cli.oauth.exceptions import ConfigError
from ticktick_cli.oauth.token_manager import TokenManager, credential_status
from ticktick_cli.oauth.token_storage import CredentialStore

from .utils import format_time_remaining, handle_oauth_errors, print_success, print_warning

logger = logging.getLogger(__name__)


@dataclass
class CLIContext:
    """Context object passed to all CLI commands.

    Attributes:
        store: Credential store for this invocation
        verbose: Verbose output enabled
    """
    store: CredentialStore
    verbose: bool

    def token_manager(self) -> TokenManager:
        """Build the token manager from environment configuration.

        Raises:
            ConfigError: If the OAuth configuration is missing or invalid
        """
        return TokenManager(OAuthConfig.from_env(), self.store)


@click.group()
@click.version_option(__version__, prog_name="tt")
@click.option("--verbose", "-v", is_flag=True, help="Verbose output")
@click.option(
    "--credentials-file",
    type=click.Path(dir_okay=False, path_type=Path),
    envvar="TICKTICK_CREDENTIALS_FILE",
    help="Credential file path (default: per-user config directory)",
)
@click.pass_context
def cli(ctx: click.Context, verbose: bool, credentials_file: Optional[Path]) -> None:
    """TickTick command-line client."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    ctx.obj = CLIContext(store=CredentialStore(credentials_file), verbose=verbose)


@cli.group()
def auth() -> None:
    """Log in, log out and inspect stored credentials."""


@auth.command()
@click.option("--no-browser", is_flag=True, help="Print the authorization URL instead of opening it")
@click.option("--timeout", type=click.IntRange(min=1), help="Seconds to wait for the browser redirect")
@click.pass_obj
@handle_oauth_errors
def login(obj: CLIContext, no_browser: bool, timeout: Optional[int]) -> None:
    """Authenticate with TickTick via OAuth (PKCE)."""
    manager = obj.token_manager()
    if timeout:
        manager = TokenManager(
            replace(manager.config, login_timeout_seconds=timeout), manager.store
        )

    if obj.verbose:
        click.echo(f"Using {manager.config.mode} mode")

    manager.login(open_browser=not no_browser)

    print_success("Successfully authenticated!")
    click.echo(f"Credentials stored in {manager.store.path}")


@auth.command()
@click.pass_obj
@handle_oauth_errors
def logout(obj: CLIContext) -> None:
    """Remove stored credentials."""
    if obj.store.clear():
        print_success("Successfully logged out.")
    else:
        click.echo("Not logged in.")


@auth.command()
@click.pass_obj
@handle_oauth_errors
def status(obj: CLIContext) -> None:
    """Show authentication status (never prints tokens)."""
    try:
        info = obj.token_manager().get_status()
    except ConfigError as e:
        logger.debug(f"OAuth configuration unavailable: {e}")
        info = credential_status(obj.store)
        info["mode"] = None

    if not info["authenticated"]:
        click.echo("Status: Not authenticated")
        click.echo("Run 'tt auth login' to authenticate.")
        return

    click.echo("Status: Authenticated")
    if info["mode"]:
        click.echo(f"Mode: {info['mode']}")
    else:
        print_warning("OAuth is not configured (set TICKTICK_CLIENT_ID to enable refresh)")
    if info["expired"]:
        click.echo("Access token: expired (will refresh on next command)")
    else:
        remaining = format_time_remaining(info["expires_in_seconds"])
        click.echo(f"Access token expires in: {remaining}")
    if info["scope"]:
        click.echo(f"Scope: {info['scope']}")
    click.echo(f"Credentials: {info['credentials_path']}")


@auth.command()
@click.pass_obj
@handle_oauth_errors
def token(obj: CLIContext) -> None:
    """Print a valid access token (refreshing it if needed)."""
    click.echo(obj.token_manager().get_valid_token())


def main() -> None:
    """Console script entry point."""
    cli()
