"""Typer-based CLI for HowTo."""

import asyncio
import logging
import threading
from pathlib import Path
from typing import Awaitable, Callable

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from .capture import CaptureSource, FileCapture
from .config import AppConfig
from .errors import HowToError
from .event_log import EventLog
from .models.chat import ChatMessage, ChatProvider, ChatRole
from .orchestrator import Session, SessionOrchestrator, create_orchestrator

app = typer.Typer(
    name="howto",
    help="HowTo - generative video and chat companion",
    add_completion=False,
)

console = Console()

SESSION_PROMPT = "[bold cyan]> [/bold cyan]"

SESSION_HELP = """Commands:
  <text>                 send a chat message to the active provider
  /gen <prompt>          start a video generation in the background
  /step <n>              follow up on workflow step n
  /provider cloud|local  switch chat provider
  /screenshot            attach a screenshot to the conversation
  /clear                 clear the chat transcript
  /status                show the current session
  /logs [errors] [FILE]  show (or write) the event log
  /quit                  leave the session"""


@app.callback()
def main_callback(
    ctx: typer.Context,
    debug: bool = typer.Option(
        False,
        "--debug",
        help="Enable debug logging",
    ),
    env_file: str = typer.Option(
        None,
        "--env-file",
        help="Path to key=value config file (default: HOWTO_ENV_FILE or .env at repo root)",
    ),
):
    """HowTo - generative video and chat companion."""
    if debug:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(message)s",
            handlers=[RichHandler(console=console, show_path=False)],
        )
    ctx.obj = {"env_file": Path(env_file) if env_file else None}


def _load_config(ctx: typer.Context) -> AppConfig:
    env_file = (ctx.obj or {}).get("env_file")
    try:
        return AppConfig.load(env_file=env_file)
    except HowToError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(code=1)


def _build_orchestrator(ctx: typer.Context, capture: CaptureSource | None = None) -> SessionOrchestrator:
    return create_orchestrator(_load_config(ctx), capture=capture)


def _print_steps(session: Session) -> None:
    if not session.workflow_steps:
        return
    table = Table(title="Workflow Steps")
    table.add_column("#", style="cyan", no_wrap=True)
    table.add_column("Title", style="magenta")
    table.add_column("Detail", style="dim")
    for i, step in enumerate(session.workflow_steps, 1):
        table.add_row(str(i), step.title, step.detail)
    console.print(table)


def _print_session(session: Session) -> None:
    if session.is_processing:
        console.print(f"[cyan]{session.status_text or 'Working'}...[/cyan]")
    elif session.status_text:
        console.print(f"[red]{session.status_text}[/red]")
    if session.video_reference:
        console.print(f"[green]Video:[/green] {session.video_reference}")
    if session.session_id:
        console.print(f"[dim]Session:[/dim] {session.session_id}")
    _print_steps(session)
    console.print(f"[dim]Chat provider:[/dim] {session.active_chat_provider.display_name}")


def _print_message(message: ChatMessage) -> None:
    if message.role == ChatRole.USER:
        label = "[bold]You[/bold]"
    else:
        label = "[bold green]Assistant[/bold green]"
    suffix = f" [dim](image, {len(message.image_data)} bytes)[/dim]" if message.image_data else ""
    console.print(f"{label}: {message.text}{suffix}")


def _print_event_log(event_log: EventLog, errors_only: bool = False) -> None:
    text = event_log.export_text(errors_only=errors_only)
    if not text:
        console.print("[dim]No log entries[/dim]")
        return
    console.print(text, markup=False, highlight=False)


@app.command()
def generate(
    ctx: typer.Context,
    prompt: str = typer.Argument(..., help="What the video should show"),
    show_logs: bool = typer.Option(
        False,
        "--show-logs",
        help="Print the event log after the request",
    ),
):
    """Generate a video for a prompt and wait for the result."""
    orchestrator = _build_orchestrator(ctx)

    with console.status("[cyan]Contacting Odyssey...[/cyan]"):
        accepted = asyncio.run(orchestrator.submit_prompt(prompt))

    if not accepted:
        console.print("[yellow]Prompt is empty - nothing to generate[/yellow]")
        raise typer.Exit(code=1)

    _print_session(orchestrator.session)

    if show_logs:
        _print_event_log(orchestrator.event_log)

    if orchestrator.session.status_text:
        raise typer.Exit(code=1)


@app.command()
def chat(
    ctx: typer.Context,
    message: str = typer.Argument(..., help="Message to send"),
    provider: str = typer.Option(
        None,
        "--provider",
        "-p",
        help="Chat provider: cloud or local (default: cloud if an API key is set)",
    ),
    image: str = typer.Option(
        None,
        "--image",
        help="Attach an image file before the message",
    ),
    screenshot: bool = typer.Option(
        False,
        "--screenshot",
        help="Attach a screenshot of the main display before the message",
    ),
    show_logs: bool = typer.Option(
        False,
        "--show-logs",
        help="Print the event log after the request",
    ),
):
    """Send one chat message and print the reply."""
    capture = FileCapture(Path(image)) if image else None
    orchestrator = _build_orchestrator(ctx, capture=capture)

    if provider:
        try:
            orchestrator.switch_chat_provider(provider.lower())
        except ValueError:
            console.print(f"[red]Error: unknown provider '{provider}' (use cloud or local)[/red]")
            raise typer.Exit(code=1)

    if image or screenshot:
        attached = orchestrator.add_screenshot_message()
        if attached.role == ChatRole.ASSISTANT:
            console.print(f"[red]{attached.text}[/red]")
            raise typer.Exit(code=1)

    active = orchestrator.session.active_chat_provider
    with console.status(f"[cyan]Asking {active.display_name}...[/cyan]"):
        reply = asyncio.run(orchestrator.send_chat_message(message))

    if reply is None:
        console.print("[yellow]Message is empty - nothing to send[/yellow]")
        raise typer.Exit(code=1)

    _print_message(reply)

    if show_logs:
        _print_event_log(orchestrator.event_log)


async def _report_generation(orchestrator: SessionOrchestrator, run: Callable[[], Awaitable[bool]]) -> None:
    accepted = await run()
    if not accepted:
        console.print("[yellow]A generation is already running (or the prompt is empty)[/yellow]")
        return
    console.print()
    _print_session(orchestrator.session)


async def _handle_line(
    orchestrator: SessionOrchestrator,
    line: str,
    spawn: Callable[[Awaitable[None]], None],
) -> bool:
    """Handle one line of session input. Returns False to leave the session."""
    session = orchestrator.session
    command, _, argument = line.partition(" ")
    argument = argument.strip()

    if not line.startswith("/"):
        reply = await orchestrator.send_chat_message(line)
        if reply is not None:
            _print_message(reply)
        return True

    if command in ("/quit", "/exit"):
        return False

    if command == "/help":
        console.print(SESSION_HELP, markup=False)
    elif command == "/gen":
        if orchestrator.generation_in_flight:
            console.print("[yellow]A generation is already running[/yellow]")
        elif not argument:
            console.print("[yellow]Usage: /gen <prompt>[/yellow]")
        else:
            orchestrator.set_prompt(argument)
            spawn(_report_generation(orchestrator, lambda: orchestrator.submit_prompt(argument)))
            console.print("[cyan]Contacting Odyssey...[/cyan]")
    elif command == "/step":
        try:
            step = session.workflow_steps[int(argument) - 1]
        except (ValueError, IndexError):
            console.print(f"[yellow]No workflow step '{argument}'[/yellow]")
            return True
        if orchestrator.generation_in_flight:
            console.print("[yellow]A generation is already running[/yellow]")
            return True
        spawn(_report_generation(orchestrator, lambda: orchestrator.tap_workflow_step(step)))
        console.print(f"[cyan]Following up: {step.follow_up_prompt}[/cyan]")
    elif command == "/provider":
        try:
            selected = orchestrator.switch_chat_provider(argument.lower())
        except ValueError:
            console.print("[yellow]Usage: /provider cloud|local[/yellow]")
            return True
        console.print(f"[green]Chat provider:[/green] {selected.display_name}")
    elif command == "/screenshot":
        _print_message(orchestrator.add_screenshot_message())
    elif command == "/clear":
        orchestrator.clear_chat()
        console.print("[dim]Transcript cleared[/dim]")
    elif command == "/status":
        _print_session(session)
    elif command == "/logs":
        args = argument.split()
        errors_only = "errors" in args
        targets = [a for a in args if a != "errors"]
        if targets:
            try:
                written = orchestrator.event_log.write_export(Path(targets[0]), errors_only=errors_only)
            except OSError as e:
                console.print(f"[red]Error: could not write {escape(targets[0])}: {escape(str(e))}[/red]")
                return True
            console.print(f"[green]+[/green] Wrote {written} log entries to {targets[0]}")
        else:
            _print_event_log(orchestrator.event_log, errors_only=errors_only)
    else:
        console.print(f"[yellow]Unknown command {command} - try /help[/yellow]")
    return True


class _LineReader:
    """Reads console input on a daemon thread.

    A line is only requested once the previous one has been handled, so the
    prompt never interleaves with command output. The thread is not part of
    the event loop's executor, so Ctrl-C exits without waiting for Enter.
    """

    def __init__(self, prompt: str = SESSION_PROMPT):
        self.prompt = prompt
        self.thread: threading.Thread | None = None
        self._wanted = threading.Event()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._lines: asyncio.Queue | None = None

    def start(self) -> None:
        self._loop = asyncio.get_running_loop()
        self._lines = asyncio.Queue()
        self.thread = threading.Thread(target=self._read_lines, name="howto-input", daemon=True)
        self.thread.start()

    def _read_lines(self) -> None:
        while True:
            self._wanted.wait()
            self._wanted.clear()
            try:
                line = console.input(self.prompt)
            except (EOFError, KeyboardInterrupt):
                line = None
            try:
                self._loop.call_soon_threadsafe(self._lines.put_nowait, line)
            except RuntimeError:
                # Event loop already closed
                return
            if line is None:
                return

    async def readline(self) -> str | None:
        """Next input line, or None at end of input."""
        self._wanted.set()
        return await self._lines.get()


async def _run_session(orchestrator: SessionOrchestrator) -> None:
    background: set[asyncio.Task] = set()

    def spawn(coro: Awaitable[None]) -> None:
        task = asyncio.ensure_future(coro)
        background.add(task)
        task.add_done_callback(background.discard)

    reader = _LineReader()
    reader.start()

    while True:
        line = await reader.readline()
        if line is None:
            break
        line = line.strip()
        if not line:
            continue
        if not await _handle_line(orchestrator, line, spawn):
            break

    if background:
        console.print(f"[yellow]Abandoning {len(background)} running request(s)[/yellow]")
        for task in background:
            task.cancel()
        await asyncio.gather(*background, return_exceptions=True)


@app.command()
def session(ctx: typer.Context):
    """Start an interactive session (chat, generations, screenshots)."""
    orchestrator = _build_orchestrator(ctx)
    provider = orchestrator.session.active_chat_provider
    console.print(f"[green]HowTo session[/green] - chatting with {provider.display_name}. Type /help for commands.")
    if provider == ChatProvider.LOCAL and not orchestrator.cloud_client.is_configured:
        console.print("[dim]OPENROUTER_API_KEY not set - using local Ollama[/dim]")
    if not orchestrator.video_client.has_credentials:
        console.print("[dim]ODYSSEY_API_KEY not set - /gen will report missing credentials[/dim]")

    try:
        asyncio.run(_run_session(orchestrator))
    except KeyboardInterrupt:
        console.print()
    console.print("[dim]Bye[/dim]")


@app.command("config")
def show_config(ctx: typer.Context):
    """Show resolved configuration (secrets masked)."""
    config = _load_config(ctx)

    table = Table(title="HowTo Configuration")
    table.add_column("Section", style="cyan", no_wrap=True)
    table.add_column("Key", style="magenta")
    table.add_column("Value")

    for section, values in config.redacted().items():
        for key, value in values.items():
            table.add_row(section, key, "-" if value is None else str(value))

    console.print(table)


@app.command()
def version():
    """Show HowTo version."""
    from . import __version__
    console.print(f"HowTo v{__version__}")


def main():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
