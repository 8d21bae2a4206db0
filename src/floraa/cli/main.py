"""Main CLI interface for Floraa.

Runs the API server and drives the chat, voice, configuration and update
services from the terminal.
"""

import asyncio
import json
import sys

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from floraa import __version__
from floraa.core.exceptions import ConfigurationError, FloraaError
from floraa.core.logging import setup_logging
from floraa.core.settings import get_config_manager

console = Console()


def _fail(ctx, message: str) -> None:
    console.print(f"[red]Error: {message}[/red]")
    if ctx.obj.get('debug'):
        console.print_exception()
    sys.exit(1)


@click.group()
@click.version_option(version=__version__, prog_name="floraa")
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx, debug):
    """Floraa AI back end: chat, voice-to-code and administration."""
    ctx.ensure_object(dict)
    ctx.obj['debug'] = debug

    logger = setup_logging()
    if debug:
        logger.setLevel('DEBUG')
        console.print("[yellow]Debug mode enabled[/yellow]")


@cli.command()
@click.option('--host', default="127.0.0.1", help="Interface to bind")
@click.option('--port', default=8000, type=int, help="Port to listen on")
@click.option('--reload', is_flag=True, help="Reload on code changes")
def serve(host, port, reload):
    """Run the HTTP API server."""
    import uvicorn

    console.print(f"[cyan]Starting Floraa API on http://{host}:{port}[/cyan]")
    uvicorn.run("floraa.web_api.app:create_app", factory=True, host=host, port=port, reload=reload)


@cli.command()
@click.argument('message', required=True)
@click.option('--project', '-p', default="default", help="Project id")
@click.option('--mode', type=click.Choice(["multi-agent", "single"]), default="multi-agent",
              help="Answer with every relevant agent or a single model")
@click.option('--conversation', '-c', default=None, help="Conversation id to continue")
@click.pass_context
def chat(ctx, message, project, mode, conversation):
    """Send a chat message to the agents.

    Example:
        floraa chat "Design the architecture for a todo app"
    """
    from floraa.chat.models import ChatRequest
    from floraa.chat.service import get_chat_service
    from floraa.context.models import new_id

    request = ChatRequest(
        message=message,
        project_id=project,
        chat_mode=mode,
        conversation_id=conversation or new_id(),
    )
    response = asyncio.run(get_chat_service().handle(request))
    if response.error:
        _fail(ctx, response.error)

    if response.responses:
        for reply in response.responses:
            console.print(Panel(reply.content, title=f"{reply.agent} ({reply.confidence:.0%})", expand=False))
    else:
        console.print(Panel(response.response or "", title=response.model or "Floraa AI", expand=False))

    for action in response.actions or []:
        console.print(f"[green]Action:[/green] {action.type}")
    console.print(f"[dim]{response.processing_time} ms[/dim]")


@cli.command()
@click.argument('text', required=True)
@click.option('--project', '-p', default=None, help="Project id")
def voice(text, project):
    """Run a typed voice command.

    Example:
        floraa voice "create a login component in typescript"
    """
    from floraa.voice.system import get_voice_system

    response = asyncio.run(get_voice_system().process_text_command(text, project_id=project))
    if response is None:
        console.print("[yellow]Another command is still being processed.[/yellow]")
        return

    console.print(Panel(response.text, title="Voice", expand=False))
    for action in response.actions or []:
        console.print(f"[green]Action:[/green] {action.type} {json.dumps(action.data)}")


@cli.group()
def config():
    """Inspect and change runtime configuration."""


@config.command("show")
@click.option('--section', '-s', default=None, help="Only show one section")
@click.pass_context
def config_show(ctx, section):
    """Show the configuration with secrets masked."""
    data = get_config_manager().public_config()
    if section:
        if section not in data:
            _fail(ctx, f"Unknown section '{section}'")
        data = data[section]
    console.print_json(json.dumps(data, default=str))


@config.command("features")
def config_features():
    """List feature flags."""
    flags = get_config_manager().get_config().features.model_dump()

    table = Table(title="Feature Flags", show_header=True, header_style="bold magenta")
    table.add_column("Feature", style="cyan", no_wrap=True)
    table.add_column("Enabled")
    for name, enabled in flags.items():
        table.add_row(name, "[green]yes[/green]" if enabled else "[red]no[/red]")
    console.print(table)


@config.command("set-feature")
@click.argument('feature')
@click.option('--enable/--disable', default=True, help="Turn the flag on or off")
@click.pass_context
def config_set_feature(ctx, feature, enable):
    """Turn a feature flag on or off."""
    try:
        get_config_manager().set_feature(feature, enable)
    except ConfigurationError as e:
        _fail(ctx, str(e))
    state = "enabled" if enable else "disabled"
    console.print(f"[green]✓[/green] {feature} {state}")


@cli.group()
def updates():
    """Check for and inspect application updates."""


@updates.command("check")
@click.pass_context
def updates_check(ctx):
    """Compare the latest GitHub release with the installed version."""
    from floraa.updates.update_manager import get_update_manager

    try:
        info = asyncio.run(get_update_manager().check_for_updates())
    except FloraaError as e:
        _fail(ctx, str(e))

    if info.has_update:
        console.print(f"[green]Update available:[/green] {info.current_version} -> {info.latest_version}")
        if info.changelog:
            console.print(Panel(info.changelog, title="Changelog", expand=False))
    else:
        console.print(f"[green]✓[/green] Up to date ({info.current_version})")


@updates.command("status")
def updates_status():
    """Show the update pipeline status."""
    from floraa.updates.update_manager import get_update_manager

    manager = get_update_manager()
    status = manager.get_update_status()
    console.print(f"Installed version: {manager.current_version}")
    console.print(f"State: {status.state.value} ({status.progress}%)")
    console.print(f"Message: {status.message}")
    if status.error:
        console.print(f"[red]Error: {status.error}[/red]")


@updates.command("history")
def updates_history():
    """List recorded update runs."""
    from floraa.updates.update_manager import get_update_manager

    history = get_update_manager().get_update_history()
    if not history:
        console.print("[yellow]No updates recorded.[/yellow]")
        return

    table = Table(title="Update History", show_header=True, header_style="bold magenta")
    table.add_column("Version", style="cyan")
    table.add_column("Date")
    table.add_column("Status")
    for entry in history:
        table.add_row(entry.version, entry.date, entry.status)
    console.print(table)


@cli.command()
def models():
    """List model cards and which models are configured."""
    from floraa.core.model_cards import MODEL_CARDS
    from floraa.llm.llm_service import get_llm_service

    available = set(get_llm_service().get_available_models())

    table = Table(title="Models", show_header=True, header_style="bold magenta")
    table.add_column("Model", style="cyan", no_wrap=True)
    table.add_column("Provider")
    table.add_column("Context", justify="right")
    table.add_column("$/1M in", justify="right")
    table.add_column("$/1M out", justify="right")
    table.add_column("Available")
    for card in MODEL_CARDS.values():
        table.add_row(
            card.display_name,
            card.provider.value,
            f"{card.context_window:,}",
            f"{card.input_price:.2f}",
            f"{card.output_price:.2f}",
            "[green]yes[/green]" if card.key in available else "[dim]no[/dim]",
        )
    console.print(table)


def main():
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
