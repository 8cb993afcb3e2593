"""Provider factory functions for CLI.

Centralizes creation of settings, chat store and API client from environment
variables. Hides configuration details from command implementations.
"""

import logging
import os
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler

from ..config import SettingsStore
from ..storage import ChatStore, create_chat_store
from ..streaming import DeepSeekClient

APP_NAME = "deepchat"

# Default console for output
_console = Console()


def app_dir() -> Path:
    """Per-user directory for settings and the chat database."""
    return Path(typer.get_app_dir(APP_NAME))


def configure_logging(level: str | None = None) -> None:
    """Route library logging through Rich on stderr.

    Environment variables:
        DEEPCHAT_LOG_LEVEL: Log level when `level` is not given (default: WARNING)
    """
    level_name = (level or os.getenv("DEEPCHAT_LOG_LEVEL", "WARNING")).upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.WARNING),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True, show_path=False)],
        force=True,
    )


def get_settings_store() -> SettingsStore:
    """Create the settings store.

    Environment variables:
        DEEPCHAT_SETTINGS: Settings file (default: <app dir>/settings.json)
        DEEPSEEK_API_ENDPOINT, DEEPSEEK_API_KEY, DEEPSEEK_CHAT_MODEL,
        DEEPSEEK_REASONER_MODEL: Override the stored values
    """
    path = os.getenv("DEEPCHAT_SETTINGS") or app_dir() / "settings.json"
    return SettingsStore(path)


def get_chat_store() -> ChatStore:
    """Create the chat store (not yet connected).

    Environment variables:
        DEEPCHAT_STORE: Backend type, sqlite or memory (default: sqlite)
        DEEPCHAT_DB: SQLite database file (default: <app dir>/deepchat.sqlite3)
    """
    backend = os.getenv("DEEPCHAT_STORE", "sqlite").lower()
    if backend == "sqlite":
        path = os.getenv("DEEPCHAT_DB") or app_dir() / "deepchat.sqlite3"
        return create_chat_store("sqlite", path=path)
    return create_chat_store(backend)


def get_client() -> DeepSeekClient:
    """Create the streaming API client.

    Environment variables:
        DEEPCHAT_TIMEOUT: Read timeout in seconds (default: 60)
    """
    timeout = os.getenv("DEEPCHAT_TIMEOUT")
    if timeout:
        return DeepSeekClient(timeout=float(timeout))
    return DeepSeekClient()


def require_settings(store: SettingsStore, console: Console | None = None) -> None:
    """Exit with a hint when the configuration is incomplete.

    Raises:
        typer.Exit: If endpoint, key or a model name is empty
    """
    con = console or _console
    missing = store.get().missing_fields()
    if missing:
        con.print(f"[red]Error: missing configuration: {', '.join(missing)}[/red]")
        con.print("[dim]Set it with: deepchat config set --api-key <key>[/dim]")
        raise typer.Exit(code=1)
