"""
CLI utility functions for the TickTick CLI.

This module provides helpers for printing messages and for turning the
OAuth error taxonomy into stable exit codes.
"""

import functools
import sys

import click

from ticktick_cli.oauth.exceptions import TickTickOAuthError


def print_error(message: str) -> None:
    """Print error message to stderr."""
    click.secho(f"Error: {message}", fg="red", err=True)


def print_success(message: str) -> None:
    """Print success message."""
    click.secho(message, fg="green")


def print_warning(message: str) -> None:
    """Print warning message to stderr."""
    click.secho(f"Warning: {message}", fg="yellow", err=True)


def format_time_remaining(seconds: float) -> str:
    """
    Format seconds into human-readable time remaining.

    Args:
        seconds: Number of seconds

    Returns:
        Formatted string (e.g., "2h 15m", "45m", "expired")
    """
    if seconds <= 0:
        return "expired"

    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)

    if hours > 0:
        return f"{hours}h {minutes}m"
    elif minutes > 0:
        return f"{minutes}m"
    else:
        return f"{int(seconds)}s"


def handle_oauth_errors(func):
    """Print OAuth errors and exit with the error's exit code."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except TickTickOAuthError as e:
            print_error(str(e))
            sys.exit(e.exit_code)

    return wrapper
