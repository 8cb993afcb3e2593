"""Main CLI application using Typer."""
import asyncio
import contextlib
import signal

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.live import Live
from rich.table import Table

from ..config import ConfigurationError
from ..conversation import ConversationEngine, Turn, TurnInProgressError, TurnState
from ..storage import Chat, Message, MessageRole, MessageStatus, PersistenceError
from ..streaming import CancellationToken
from .formatting import render_message, render_reply, time_ago
from .providers import (
    configure_logging,
    get_chat_store,
    get_client,
    get_settings_store,
    require_settings,
)

# Load environment variables
load_dotenv()

# Create Typer app
app = typer.Typer(
    name="deepchat",
    help="Streaming chat client for DeepSeek and other OpenAI-compatible APIs",
    no_args_is_help=True,
    add_completion=True,
)
config_app = typer.Typer(help="Show or change API settings", no_args_is_help=True)
app.add_typer(config_app, name="config")

# Console for rich output
console = Console()


@app.callback()
def main_options(
    log_level: str = typer.Option(
        None,
        "--log-level",
        help="Log level for diagnostics on stderr (debug, info, warning, error)"
    )
):
    """Streaming chat client for DeepSeek and other OpenAI-compatible APIs."""
    configure_logging(log_level)


@config_app.command("show")
def config_show():
    """Show the effective settings (API key masked)."""
    store = get_settings_store()
    settings = store.get()
    key = settings.api_key.get_secret_value()

    table = Table(show_header=False)
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    table.add_row("Settings file", str(store.path))
    table.add_row("API endpoint", settings.api_endpoint or "[red]<unset>[/red]")
    table.add_row("API key", f"{key[:3]}...{key[-4:]}" if len(key) > 8 else ("****" if key else "[red]<unset>[/red]"))
    table.add_row("Chat model", settings.chat_model or "[red]<unset>[/red]")
    table.add_row("Reasoner model", settings.reasoner_model or "[red]<unset>[/red]")
    console.print(table)

    if not settings.is_valid:
        console.print(f"[yellow]Incomplete: {', '.join(settings.missing_fields())}[/yellow]")


@config_app.command("set")
def config_set(
    endpoint: str = typer.Option(None, "--endpoint", "-e", help="API base URL"),
    api_key: str = typer.Option(None, "--api-key", "-k", help="API key"),
    chat_model: str = typer.Option(None, "--chat-model", help="Model for normal replies"),
    reasoner_model: str = typer.Option(None, "--reasoner-model", help="Model for deep thinking"),
):
    """Change and save API settings."""
    store = get_settings_store()
    try:
        store.update(
            api_endpoint=endpoint,
            api_key=api_key,
            chat_model=chat_model,
            reasoner_model=reasoner_model,
        )
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(code=1)
    console.print(f"[green]Settings saved to {store.path}[/green]")


@app.command("list")
def list_chats():
    """List chats, most recently active first."""
    async def _list():
        store = get_chat_store()
        try:
            await store.connect()
            chats = await store.fetch_all_chats()
        except PersistenceError as e:
            console.print(f"[red]Error: {e}[/red]")
            raise typer.Exit(code=1)
        finally:
            await store.disconnect()

        if not chats:
            console.print("[dim]No chats yet. Start one with: deepchat ask \"...\"[/dim]")
            return

        table = Table(show_header=True, header_style="bold cyan")
        table.add_column("ID", style="dim")
        table.add_column("Title", style="cyan")
        table.add_column("Messages", justify="right", width=8)
        table.add_column("Updated", style="green")
        for chat in chats:
            table.add_row(chat.id, chat.title, str(len(chat.messages)), time_ago(chat.updated_at))
        console.print(table)

    asyncio.run(_list())


@app.command()
def show(chat_id: str = typer.Argument(..., help="Chat ID")):
    """Print the transcript of a chat."""
    async def _show():
        store = get_chat_store()
        try:
            await store.connect()
            chat = await store.get_chat(chat_id)
        except PersistenceError as e:
            console.print(f"[red]Error: {e}[/red]")
            raise typer.Exit(code=1)
        finally:
            await store.disconnect()

        if chat is None:
            console.print(f"[red]Chat not found: {chat_id}[/red]")
            raise typer.Exit(code=1)
        _print_transcript(chat)

    asyncio.run(_show())


@app.command()
def delete(
    chat_id: str = typer.Argument(..., help="Chat ID"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
):
    """Delete a chat and its messages."""
    async def _delete():
        store = get_chat_store()
        try:
            await store.connect()
            chat = await store.get_chat(chat_id)
            if chat is None:
                console.print(f"[red]Chat not found: {chat_id}[/red]")
                raise typer.Exit(code=1)
            if not yes and not typer.confirm(f"Delete '{chat.title}'?"):
                console.print("[dim]Aborted.[/dim]")
                return
            await store.delete_chat(chat)
            console.print("[green]Chat deleted[/green]")
        except PersistenceError as e:
            console.print(f"[red]Error: {e}[/red]")
            raise typer.Exit(code=1)
        finally:
            await store.disconnect()

    asyncio.run(_delete())


@app.command()
def ask(
    message: str = typer.Argument(..., help="Message to send"),
    chat_id: str = typer.Option(None, "--chat", "-c", help="Continue an existing chat"),
    think: bool = typer.Option(False, "--think", "-t", help="Use the reasoner model"),
):
    """Send one message and stream the reply. Ctrl-C stops the reply."""
    settings_store = get_settings_store()
    require_settings(settings_store, console)

    async def _ask():
        store = get_chat_store()
        try:
            await store.connect()
            async with get_client() as client:
                engine = ConversationEngine(settings_store, store, client)
                chat = Chat()
                if chat_id:
                    chat = await engine.get_chat(chat_id)
                    if chat is None:
                        console.print(f"[red]Chat not found: {chat_id}[/red]")
                        raise typer.Exit(code=1)
                turn = await _run_turn(engine, chat, message, think)
                await _report_turn(engine, turn)
                if turn.state is TurnState.FAILED:
                    raise typer.Exit(code=1)
        except PersistenceError as e:
            console.print(f"[red]Error: {e}[/red]")
            raise typer.Exit(code=1)
        finally:
            await store.disconnect()

    asyncio.run(_ask())


@app.command()
def chat(
    chat_id: str = typer.Argument(None, help="Chat ID to continue (default: new chat)"),
    think: bool = typer.Option(False, "--think", "-t", help="Start with deep thinking on"),
):
    """Interactive chat. /think toggles deep thinking, /exit quits."""
    settings_store = get_settings_store()
    require_settings(settings_store, console)

    store = get_chat_store()
    client = get_client()
    deep_thinking = think

    with asyncio.Runner() as runner:
        try:
            runner.run(store.connect())
            engine = ConversationEngine(settings_store, store, client)

            conversation = Chat()
            if chat_id:
                loaded = runner.run(engine.get_chat(chat_id))
                if loaded is None:
                    console.print(f"[red]Chat not found: {chat_id}[/red]")
                    raise typer.Exit(code=1)
                conversation = loaded
                _print_transcript(conversation)

            console.print("[dim]/think toggles deep thinking, /exit quits, Ctrl-C stops a reply[/dim]")
            while True:
                try:
                    prompt = "[bold magenta]You (thinking):[/bold magenta] " if deep_thinking else "[bold yellow]You:[/bold yellow] "
                    user_input = console.input(prompt)
                except (KeyboardInterrupt, EOFError):
                    console.print("\n[dim]Goodbye![/dim]")
                    break

                text = user_input.strip()
                if not text:
                    continue
                if text.lower() in ("/exit", "/quit"):
                    console.print("[dim]Goodbye![/dim]")
                    break
                if text.lower() == "/think":
                    deep_thinking = not deep_thinking
                    console.print(f"[dim]Deep thinking {'on' if deep_thinking else 'off'}[/dim]")
                    continue

                try:
                    turn = runner.run(_run_turn(engine, conversation, text, deep_thinking))
                    runner.run(_report_turn(engine, turn))
                except (ConfigurationError, TurnInProgressError) as e:
                    console.print(f"[red]Error: {e}[/red]")
        except PersistenceError as e:
            console.print(f"[red]Error: {e}[/red]")
            raise typer.Exit(code=1)
        finally:
            runner.run(client.close())
            runner.run(store.disconnect())


async def _run_turn(engine: ConversationEngine, chat: Chat, content: str, deep_thinking: bool) -> Turn:
    """Run a turn with a live view; SIGINT cancels the reply instead of the program."""
    token = CancellationToken()
    loop = asyncio.get_running_loop()
    with contextlib.suppress(NotImplementedError, RuntimeError):
        loop.add_signal_handler(signal.SIGINT, token.cancel)

    try:
        placeholder = Message(role=MessageRole.ASSISTANT, status=MessageStatus.STREAMING)
        with Live(render_reply(placeholder), console=console, refresh_per_second=12) as live:
            turn = await engine.send_message(
                chat,
                content,
                deep_thinking=deep_thinking,
                on_update=lambda message: live.update(render_reply(message)),
                token=token,
            )
            if turn.assistant_message is not None:
                live.update(render_reply(turn.assistant_message))
        return turn
    finally:
        with contextlib.suppress(NotImplementedError, RuntimeError):
            loop.remove_signal_handler(signal.SIGINT)


async def _report_turn(engine: ConversationEngine, turn: Turn) -> None:
    if turn.state is TurnState.FAILED and turn.assistant_message is None:
        console.print(f"[red]Message not saved: {turn.error}[/red]")
        return
    if turn.state is TurnState.FAILED:
        console.print(f"[red]Reply failed: {turn.error}[/red]")
    elif turn.state is TurnState.CANCELLED:
        console.print("[yellow]Reply stopped[/yellow]")

    while turn.needs_commit:
        console.print(f"[red]Saving the reply failed: {turn.commit_error}[/red]")
        if not typer.confirm("Retry saving?", default=True):
            break
        await engine.retry_commit(turn)

    console.print(f"[dim]chat {turn.chat.id}[/dim]")


def _print_transcript(chat: Chat) -> None:
    console.print(f"[bold]{chat.title}[/bold] [dim]({chat.id})[/dim]\n")
    for message in chat.messages:
        console.print(render_message(message))


def main():
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
