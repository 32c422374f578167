"""Interactive console chat against a local OpenAI-compatible LLM server."""

from __future__ import annotations

import asyncio
import logging
import sys
from typing import Callable

import click
from rich.console import Console

from local_chat.agent import ChatAgent, build_agent
from local_chat.config import ChatConfig, load_config
from local_chat.errors import ConfigError
from local_chat.llm.telemetry import OpenTelemetryCollector
from local_chat.observability import setup_observability

console = Console()

_logger = logging.getLogger(__name__)

EXIT_COMMANDS = ("exit", "quit")


def is_exit_command(text: str | None) -> bool:
    """EOF, blank input, ``exit`` and ``quit`` (any case) end the session."""
    if text is None:
        return True
    stripped = text.strip()
    return not stripped or stripped.lower() in EXIT_COMMANDS


def _read_line() -> str | None:
    try:
        return console.input("[bold green]You:[/bold green] ")
    except EOFError:
        return None


def _print_error(exc: Exception, out: Console) -> None:
    out.print(f"\nError: {exc}", style="red", markup=False, highlight=False)
    cause = exc.__cause__ or exc.__context__
    if cause is not None:
        out.print(f"Details: {cause}", style="red", markup=False, highlight=False)
    out.print(
        "[dim]Please check your local LLM is running and the configuration "
        "is correct.[/dim]\n"
    )


async def chat_loop(
    agent: ChatAgent,
    read_line: Callable[[], str | None] = _read_line,
    out: Console = console,
) -> int:
    """Read-eval loop.  Returns the number of turns attempted."""
    turns = 0
    while True:
        user_input = await asyncio.to_thread(read_line)
        if is_exit_command(user_input):
            out.print("Goodbye!")
            return turns

        turns += 1
        try:
            reply = await agent.run(user_input)
        except Exception as e:
            _logger.debug("Turn %d failed", turns, exc_info=True)
            _print_error(e, out)
            continue

        out.print("[bold cyan]Assistant:[/bold cyan] ", end="")
        out.print(reply, markup=False, highlight=False)
        out.print()


def log_levels(verbose: bool, export_logs: bool) -> tuple[int, int]:
    """Return (console handler level, root logger level).

    The console shows WARNING and up unless *verbose*.  When logs are exported
    the root logger is opened to INFO so the OTLP handler still receives them.
    """
    console_level = logging.DEBUG if verbose else logging.WARNING
    if export_logs:
        return console_level, min(console_level, logging.INFO)
    return console_level, console_level


def _print_banner(config: ChatConfig) -> None:
    console.print("[bold bright_blue]=== Local LLM Chat ===[/bold bright_blue]")
    if config.telemetry.enabled:
        console.print(
            f"[dim]Telemetry: OTLP -> {config.telemetry.otlp_endpoint} "
            f"({config.telemetry.service_name})[/dim]"
        )
    else:
        console.print("[dim]Telemetry: disabled[/dim]")
    console.print(f"[dim]Connecting to: {config.endpoint.url}[/dim]")
    console.print(f"[dim]Model: {config.endpoint.model}[/dim]")
    console.print(
        "[dim]Type 'exit' or 'quit' (or an empty line) to end the "
        "conversation.[/dim]\n"
    )


async def _run(agent: ChatAgent) -> None:
    try:
        await chat_loop(agent)
    finally:
        await agent.close()


@click.command()
@click.option("--config", "-c", "config_path", default=None,
              help="Path to local_chat.yaml (auto-detected from CWD or ~/.config/local-chat/)")
@click.option("--no-telemetry", is_flag=True, help="Disable OpenTelemetry export")
@click.option("--verbose", "-v", is_flag=True, help="Verbose logging")
def main(config_path: str | None, no_telemetry: bool, verbose: bool):
    """Chat with a local OpenAI-compatible LLM server."""
    console_level, root_level = log_levels(verbose, export_logs=not no_telemetry)
    handler = logging.StreamHandler()
    handler.setLevel(console_level)
    logging.basicConfig(level=root_level, handlers=[handler])

    config = load_config(config_path)
    if no_telemetry:
        config.telemetry.enabled = False

    try:
        config.endpoint.validate()
    except ConfigError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)

    observability = setup_observability(config.telemetry)
    collector = None
    if config.telemetry.enabled:
        collector = OpenTelemetryCollector(config.telemetry.source_name)

    _print_banner(config)
    _logger.info("Local chat started (model=%s)", config.endpoint.model)

    agent = build_agent(config, collector=collector)
    try:
        asyncio.run(_run(agent))
    finally:
        if observability is not None:
            observability.shutdown()


if __name__ == "__main__":
    main()
