import asyncio
import functools
import sys
from typing import Optional

import click
from rich.console import Console
from rich.live import Live
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table

from config.logic import load_and_merge_configs
from config.models import Config
from core.contracts.models import FormattingSession, ProjectStatus, SessionStatus
from core.pipeline import NoteCapture
from core.render.markdown import render_markdown
from utils.errors import QuickNotesException
from utils.logger import setup_logger, logger

console = Console()
err_console = Console(stderr=True)

STATUS_CHOICES = click.Choice([status.value for status in ProjectStatus])


def apply_cli_overrides(config: Config, provider: Optional[str], model: Optional[str], repo: Optional[str]) -> Config:
    """Applies CLI options to the loaded configuration."""
    if provider:
        config.model.provider = provider
        logger.info(f"Using provider override: {provider}")
    if model:
        config.model.name = model
        logger.info(f"Using model override: {model}")
    if repo:
        owner, sep, name = repo.partition("/")
        if not sep or not owner or not name:
            raise click.BadParameter("expected OWNER/NAME", param_hint="--repo")
        config.github.owner = owner
        config.github.repo = name
    return config


def reports_errors(func):
    """Prints known errors as a single red line and exits non-zero."""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        ctx = click.get_current_context()
        verbose = ctx.obj.get("verbose", False) if ctx.obj else False
        try:
            return func(*args, **kwargs)
        except QuickNotesException as e:
            logger.opt(exception=verbose).error("Known error: {}", e)
            err_console.print(f"[bold red]Error:[/bold red] {e}")
            ctx.exit(1)
    return wrapper


def get_capture(ctx: click.Context) -> NoteCapture:
    if "capture" not in ctx.obj:
        config = load_and_merge_configs(custom_config_path=ctx.obj.get("config_path"))
        config = apply_cli_overrides(config, ctx.obj.get("provider"), ctx.obj.get("model"), ctx.obj.get("repo"))
        capture = NoteCapture(config)
        ctx.call_on_close(capture.close)
        ctx.obj["capture"] = capture
    return ctx.obj["capture"]


async def run_and_close(capture: NoteCapture, coro):
    """Awaits `coro`, then closes the provider on the same event loop."""
    try:
        return await coro
    finally:
        await capture.aclose()


def stream_notes(capture: NoteCapture, text: str) -> FormattingSession:
    """Streams the formatted notes into a live view. Ctrl-C aborts and keeps partial output."""
    with Live(Markdown(""), console=console, refresh_per_second=12, transient=False) as live:
        def on_update(session: FormattingSession) -> None:
            live.update(Markdown(session.output))

        try:
            return asyncio.run(run_and_close(capture, capture.format_notes(text, on_update=on_update)))
        except KeyboardInterrupt:
            controller = capture.controller
            if controller is not None:
                controller.abort()
                return controller.session
            return FormattingSession(raw_input=text, status=SessionStatus.ABORTED)


def format_or_exit(ctx: click.Context, capture: NoteCapture, text: str, stream: bool) -> str:
    """Returns the formatted notes, or exits when formatting did not complete."""
    if not stream:
        with console.status("[bold green]Formatting notes...[/bold green]"):
            return asyncio.run(run_and_close(capture, capture.format_notes_once(text)))

    session = stream_notes(capture, text)
    if session.status is SessionStatus.COMPLETED:
        return session.output
    if session.status is SessionStatus.ABORTED:
        err_console.print("[yellow]Formatting aborted.[/yellow]")
    else:
        err_console.print(f"[bold red]Formatting failed:[/bold red] {session.error}")
    ctx.exit(1)


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose logging for debugging")
@click.option(
    "-c", "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False),
    help="Path to a custom configuration file",
)
@click.option("--provider", type=str, help="Override the model provider (e.g. 'github', 'openai')")
@click.option("--model", type=str, help="Override the model name (e.g. 'openai/gpt-4o-mini')")
@click.option("--repo", type=str, help="Override the target repository as OWNER/NAME")
@click.pass_context
def cli(ctx, verbose: bool, config_path: Optional[str], provider: Optional[str], model: Optional[str], repo: Optional[str]):
    """
    Capture notes into GitHub issues, optionally reformatted by a model.
    """
    setup_logger(log_level="DEBUG" if verbose else "WARNING")
    ctx.obj = {
        "verbose": verbose,
        "config_path": config_path,
        "provider": provider,
        "model": model,
        "repo": repo,
    }


@cli.command("whoami")
@click.pass_context
@reports_errors
def whoami(ctx):
    """Show the user the token belongs to."""
    user = get_capture(ctx).tracker.get_authenticated_user()
    console.print(f"[bold]{user.login}[/bold]" + (f" ({user.name})" if user.name else ""))
    if user.email:
        console.print(user.email)


@cli.command("labels")
@click.pass_context
@reports_errors
def labels(ctx):
    """List the repository's labels."""
    capture = get_capture(ctx)
    table = Table(title=f"Labels in {capture.owner}/{capture.repo}")
    table.add_column("Name", style="bold")
    table.add_column("Color")
    table.add_column("Description")
    for label in capture.tracker.list_labels(capture.owner, capture.repo):
        table.add_row(label.name, f"[#{label.color}]#{label.color}[/]", label.description or "")
    console.print(table)


@cli.command("search")
@click.argument("query")
@click.option("-n", "--limit", default=5, show_default=True, help="Maximum number of results")
@click.pass_context
@reports_errors
def search(ctx, query: str, limit: int):
    """Search the repository's issues by text."""
    capture = get_capture(ctx)
    issues = capture.tracker.search_issues(capture.owner, capture.repo, query, first=limit)
    if not issues:
        console.print("[yellow]No matching issues.[/yellow]")
        return
    for issue in issues:
        console.print(f"[bold cyan]#{issue.number}[/bold cyan] {issue.title} [dim]({issue.state})[/dim]")
        console.print(f"    {issue.url}", style="dim")


@cli.command("models")
@click.pass_context
@reports_errors
def models(ctx):
    """List the models available for formatting."""
    capture = get_capture(ctx)
    for model in capture.list_models():
        marker = "*" if model.id == capture.config.model.name else " "
        console.print(f"{marker} [bold]{model.id}[/bold]  {model.label}")


@cli.command("project")
@click.argument("org")
@click.argument("number", type=int)
@click.pass_context
@reports_errors
def project(ctx, org: str, number: int):
    """Look up an organization project board."""
    info = get_capture(ctx).tracker.fetch_project(org, number)
    console.print(f"[bold]{info.name}[/bold] (#{info.number})  node id: {info.id}")
    if info.body:
        console.print(info.body)


@cli.command("format")
@click.argument("notes", type=click.File("r", encoding="utf-8"), default="-")
@click.option("--stream/--no-stream", default=True, help="Stream the formatted notes as they arrive")
@click.pass_context
@reports_errors
def format_notes(ctx, notes, stream: bool):
    """Reformat NOTES (a file, or stdin) into issue-ready Markdown."""
    capture = get_capture(ctx)
    markdown = format_or_exit(ctx, capture, notes.read(), stream)
    if not stream:
        console.print(Markdown(markdown))


@cli.command("issue")
@click.argument("notes", type=click.File("r", encoding="utf-8"), default="-")
@click.option("-t", "--title", required=True, help="Issue title")
@click.option("-l", "--label", "labels", multiple=True, help="Label to apply (repeatable)")
@click.option("--format/--no-format", "format_first", default=False, help="Reformat the notes with the model first")
@click.option("--status", type=STATUS_CHOICES, help="Project Status for the new item")
@click.option("--dry-run", is_flag=True, default=False, help="Show the body without creating the issue")
@click.pass_context
@reports_errors
def issue(ctx, notes, title: str, labels, format_first: bool, status: Optional[str], dry_run: bool):
    """Create an issue from NOTES (a file, or stdin)."""
    capture = get_capture(ctx)
    body = notes.read()
    if format_first:
        body = format_or_exit(ctx, capture, body, capture.config.model.stream)

    if dry_run:
        console.print(Panel(Markdown(body), title=f"[bold cyan]{title}[/bold cyan]", border_style="cyan"))
        return

    created = capture.submit_issue(title, body, labels, ProjectStatus(status) if status else None)
    console.print(f"[bold green]Created issue #{created.number}:[/bold green] {created.url}")


@cli.command("comment")
@click.argument("issue_number", type=int)
@click.argument("notes", type=click.File("r", encoding="utf-8"), default="-")
@click.option("--format/--no-format", "format_first", default=False, help="Reformat the notes with the model first")
@click.option("--status", type=STATUS_CHOICES, help="Project Status for the issue")
@click.option("--dry-run", is_flag=True, default=False, help="Show the body without posting the comment")
@click.pass_context
@reports_errors
def comment(ctx, issue_number: int, notes, format_first: bool, status: Optional[str], dry_run: bool):
    """Add NOTES (a file, or stdin) as a comment on ISSUE_NUMBER."""
    capture = get_capture(ctx)
    body = notes.read()
    if format_first:
        body = format_or_exit(ctx, capture, body, capture.config.model.stream)

    if dry_run:
        console.print(Panel(Markdown(body), title=f"[bold cyan]Comment on #{issue_number}[/bold cyan]", border_style="cyan"))
        return

    created = capture.submit_comment(issue_number, body, ProjectStatus(status) if status else None)
    console.print(f"[bold green]Added comment:[/bold green] {created.url}")


@cli.command("render")
@click.argument("source", type=click.File("r", encoding="utf-8"), default="-")
@click.option("-o", "--output", type=click.File("w", encoding="utf-8"), default="-", help="Where to write the HTML")
def render(source, output):
    """Render Markdown from SOURCE to styled HTML."""
    output.write(render_markdown(source.read()))


def main():
    cli(prog_name="quicknotes")


if __name__ == "__main__":
    sys.exit(main())
