"""
studysync CLI - terminal driver for study sessions and progress sync.

Usage:
    studysync study daten-informatikrecht                # Study all groups
    studysync study daten-informatikrecht -g Basics -n 10
    studysync study daten-informatikrecht --user alice   # Signed in, syncs remotely
    studysync status daten-informatikrecht               # Progress overview
    studysync status                                     # Courses with cached progress
    studysync export daten-informatikrecht --out ./backup
    studysync import ./backup/daten-informatikrecht-progress-2025-01-01.json --course daten-informatikrecht
    studysync reset daten-informatikrecht --yes

Configuration comes from STUDYSYNC_* environment variables or a .env file.
"""

from __future__ import annotations

import asyncio
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Annotated

import typer
from loguru import logger
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm, Prompt
from rich.table import Table

from studysync.config import Settings, get_settings
from studysync.content.loader import CourseLoader, course_name
from studysync.core.models import CourseMetadata, CourseProgress, MasteryLevel
from studysync.core.progress import synchronize_progress
from studysync.exceptions import ProgressImportError
from studysync.store.local_store import LocalProgressStore
from studysync.store.remote_store import RemoteProgressStore
from studysync.study.session import SessionState, SessionStats, StudySession
from studysync.sync.conflict import SyncChoice
from studysync.sync.course_store import CourseStore
from studysync.sync.resolution import ProgressResolver
from studysync.sync.transfer import export_progress, import_progress

# =============================================================================
# CLI Setup
# =============================================================================

app = typer.Typer(
    name="studysync",
    help="Spaced-repetition quiz sessions with local and cloud progress",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

console = Console()

UserOption = Annotated[
    str | None, typer.Option("--user", "-u", help="Signed-in user id (enables remote sync)")
]
TokenOption = Annotated[
    str | None, typer.Option("--token", help="Bearer token for the remote store")
]


class RichPromptArbiter:
    """Asks on the terminal whether to use cloud or local progress."""

    def __init__(self, console: Console):
        self.console = console

    async def choose(self, local: CourseProgress, remote: CourseProgress) -> SyncChoice | None:
        table = Table(title="Sync conflict", show_header=True)
        table.add_column("")
        table.add_column("Local", justify="right")
        table.add_column("Cloud", justify="right")
        table.add_row("Last activity", _format_time(local), _format_time(remote))
        table.add_row("Mastered", str(local.mastered_count), str(remote.mastered_count))
        table.add_row(
            "Accuracy",
            f"{round(local.overall_accuracy)}%",
            f"{round(remote.overall_accuracy)}%",
        )
        self.console.print(table)
        self.console.print(
            "[yellow]Cloud progress is newer. Using it discards local activity not yet synced.[/]"
        )

        answer = Prompt.ask(
            "Which progress should be kept?",
            choices=[SyncChoice.CLOUD.value, SyncChoice.LOCAL.value],
            default=SyncChoice.LOCAL.value,
            console=self.console,
        )
        return SyncChoice(answer)


def _format_time(progress: CourseProgress) -> str:
    if progress.last_activity_at is None:
        return "never"
    return progress.last_activity_at.astimezone().strftime("%Y-%m-%d %H:%M")


@asynccontextmanager
async def open_store(
    settings: Settings,
    user_id: str | None,
    token: str | None = None,
) -> AsyncIterator[CourseStore]:
    """Wire up stores, resolver and course store; flush pushes on exit."""
    local_store = LocalProgressStore(settings.get_local_db_path())
    remote_store = RemoteProgressStore.from_settings(settings)
    resolver = ProgressResolver(local_store, remote_store, RichPromptArbiter(console))
    loader = CourseLoader(settings.course_base_url, timeout=settings.remote_timeout_seconds)
    store = CourseStore(loader, local_store, remote_store, resolver)

    store.set_user(user_id or settings.user_id, auth_token=token)
    try:
        yield store
    finally:
        await store.wait_for_pending()
        await remote_store.close()
        local_store.close()


async def _load(store: CourseStore, settings: Settings, course_id: str) -> CourseProgress:
    metadata = CourseMetadata(id=course_id, name=course_name(course_id, settings.course_names))
    progress = await store.load_course(metadata)
    if progress is None:
        console.print(f"[red]{store.state.error}[/]")
        raise typer.Exit(1)
    return progress


# =============================================================================
# Study Commands
# =============================================================================


@app.command()
def study(
    course_id: Annotated[str, typer.Argument(help="Course id")],
    group: Annotated[
        str | None, typer.Option("--group", "-g", help="Only study this question group")
    ] = None,
    limit: Annotated[
        int | None, typer.Option("--limit", "-n", help="Maximum questions (0 = all)")
    ] = None,
    user: UserOption = None,
    token: TokenOption = None,
) -> None:
    """Start a study session, most urgent questions first."""
    settings = get_settings()
    asyncio.run(_run_study(settings, course_id, group, limit, user, token))


async def _run_study(
    settings: Settings,
    course_id: str,
    group: str | None,
    limit: int | None,
    user: str | None,
    token: str | None,
) -> None:
    async with open_store(settings, user, token) as store:
        progress = await _load(store, settings, course_id)
        course = store.state.course

        if group is not None and course.group(group) is None:
            console.print(f"[red]Unknown question group: {group}[/]")
            raise typer.Exit(1)

        session = StudySession(on_progress=store.update_progress, on_finished=_show_summary)
        session.start(
            course,
            progress,
            group_name=group,
            limit=limit if limit is not None else settings.default_question_limit,
        )

        while session.state != SessionState.FINISHED:
            _ask_current(session)
            # Let background pushes run between questions
            await asyncio.sleep(0)


def _ask_current(session: StudySession) -> None:
    candidate = session.current
    question = candidate.question

    body = "\n".join(
        f"  [cyan]{index + 1}[/]. {answer.text}" for index, answer in enumerate(question.answers)
    )
    level = candidate.progress.mastery_level
    console.print(
        Panel(
            f"[bold]{question.question}[/]\n\n{body}",
            title=f"{session.index + 1}/{len(session.queue)} · {candidate.group_name}",
            subtitle=f"[{level.color}]{level.display_name}[/]",
        )
    )

    while session.state == SessionState.IN_PROGRESS:
        raw = Prompt.ask(
            "Answer numbers (e.g. 1,3), [bold]h[/] hint, [bold]q[/] quit",
            console=console,
        ).strip().lower()

        if raw == "q":
            session.finish()
            return
        if raw == "h":
            session.reveal_hint()
            console.print(f"[dim]Hint: {question.hint or 'no hint available'}[/]")
            continue

        for part in raw.replace(" ", ",").split(","):
            if part.isdigit():
                session.select_answer(int(part) - 1)

        if session.submit() is None:
            console.print("[yellow]Select at least one valid answer.[/]")
            for index in session.selected:
                session.select_answer(index)

    if session.last_result:
        console.print("[green]✓ Correct[/]")
    else:
        console.print("[red]✗ Incorrect[/]")
        missed = session.missed_correct_answers()
        if missed:
            console.print("Missed: " + "; ".join(answer.text for answer in missed))
    if question.reason:
        console.print(f"[dim]{question.reason}[/]")

    session.advance()


def _show_summary(stats: SessionStats) -> None:
    console.print(
        Panel(
            f"Answered: {stats.total_answered}\n"
            f"Correct: [green]{stats.correct_answers}[/]\n"
            f"Incorrect: [red]{stats.incorrect_answers}[/]\n"
            f"Accuracy: {stats.accuracy}%",
            title="Session complete",
        )
    )


# =============================================================================
# Progress Commands
# =============================================================================


@app.command()
def status(
    course_id: Annotated[str | None, typer.Argument(help="Course id")] = None,
    user: UserOption = None,
    token: TokenOption = None,
) -> None:
    """Show progress for a course, or list courses with cached progress."""
    settings = get_settings()

    if course_id is None:
        local_store = LocalProgressStore(settings.get_local_db_path())
        try:
            course_ids = local_store.list_course_ids()
        finally:
            local_store.close()

        if not course_ids:
            console.print("[dim]No cached progress yet.[/]")
            return
        for cached_id in course_ids:
            console.print(f"• {cached_id} [dim]({course_name(cached_id, settings.course_names)})[/]")
        return

    asyncio.run(_run_status(settings, course_id, user, token))


async def _run_status(settings: Settings, course_id: str, user: str | None, token: str | None) -> None:
    async with open_store(settings, user, token) as store:
        progress = await _load(store, settings, course_id)
        stats = store.progress_stats()

    table = Table(title=progress.course_name, show_header=True)
    table.add_column("Group", style="cyan")
    table.add_column("Questions", justify="right")
    for level in MasteryLevel:
        table.add_column(level.display_name, justify="right", style=level.color)
    table.add_column("Completion", justify="right")
    table.add_column("Accuracy", justify="right")

    for group_progress in progress.groups_progress:
        table.add_row(
            group_progress.group_name,
            str(group_progress.total_questions),
            str(group_progress.not_started_count),
            str(group_progress.learning_count),
            str(group_progress.reviewing_count),
            str(group_progress.mastered_count),
            f"{round(group_progress.completion_percentage)}%",
            f"{round(group_progress.average_accuracy)}%",
        )

    console.print(table)
    console.print(
        f"Overall: [bold]{stats.completion}%[/] complete, "
        f"{stats.accuracy}% accuracy, {stats.mastered}/{stats.total} mastered, "
        f"streak {progress.current_streak} (best {progress.longest_streak})"
    )


@app.command("export")
def export_command(
    course_id: Annotated[str, typer.Argument(help="Course id")],
    out: Annotated[
        Path | None, typer.Option("--out", "-o", help="Output directory")
    ] = None,
    user: UserOption = None,
    token: TokenOption = None,
) -> None:
    """Export course progress to a JSON file."""
    settings = get_settings()
    path = asyncio.run(_run_export(settings, course_id, out or Path.cwd(), user, token))
    console.print(f"[green]✓ Exported progress to {path}[/]")


async def _run_export(
    settings: Settings,
    course_id: str,
    directory: Path,
    user: str | None,
    token: str | None,
) -> Path:
    async with open_store(settings, user, token) as store:
        progress = await _load(store, settings, course_id)
    return export_progress(progress, directory)


@app.command("import")
def import_command(
    file: Annotated[Path, typer.Argument(help="Progress export file")],
    course: Annotated[str, typer.Option("--course", "-c", help="Course to import into")],
    yes: Annotated[
        bool, typer.Option("--yes", "-y", help="Import even if the file is for another course")
    ] = False,
    user: UserOption = None,
    token: TokenOption = None,
) -> None:
    """Replace course progress with an exported file."""
    settings = get_settings()
    imported = asyncio.run(_run_import(settings, file, course, yes, user, token))
    if imported:
        console.print(f"[green]✓ Imported progress from {file}[/]")
    else:
        console.print("[yellow]Import cancelled.[/]")


async def _run_import(
    settings: Settings,
    file: Path,
    course_id: str,
    yes: bool,
    user: str | None,
    token: str | None,
) -> bool:
    def confirm(message: str) -> bool:
        return yes or Confirm.ask(message, default=False, console=console)

    async with open_store(settings, user, token) as store:
        await _load(store, settings, course_id)

        try:
            progress = import_progress(
                file,
                course_id,
                confirm,
                current_course_name=store.state.metadata.name,
            )
        except ProgressImportError as e:
            console.print(f"[red]{e}[/]")
            raise typer.Exit(1) from e

        if progress is None:
            return False

        store.update_progress(synchronize_progress(progress, store.state.course))
        return True


@app.command()
def reset(
    course_id: Annotated[str, typer.Argument(help="Course id")],
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation")] = False,
    user: UserOption = None,
    token: TokenOption = None,
) -> None:
    """Delete all progress for a course (local and cloud)."""
    if not yes and not Confirm.ask(
        f"Delete all progress for {course_id}?", default=False, console=console
    ):
        console.print("[yellow]Reset cancelled.[/]")
        raise typer.Exit(0)

    settings = get_settings()
    asyncio.run(_run_reset(settings, course_id, user, token))
    console.print(f"[green]✓ Progress for {course_id} deleted[/]")


async def _run_reset(settings: Settings, course_id: str, user: str | None, token: str | None) -> None:
    async with open_store(settings, user, token) as store:
        await store.clear_progress(course_id)


# =============================================================================
# Entry Point
# =============================================================================


def configure_logging(settings: Settings) -> None:
    """Route loguru output to stderr (and an optional rotating file)."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=settings.log_level,
        format="<level>{message}</level>",
    )
    if settings.log_file:
        logger.add(
            settings.log_file,
            level="DEBUG",
            rotation="10 MB",
            format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{line} | {message}",
        )


def main() -> None:
    """CLI entry point."""
    configure_logging(get_settings())
    app()


if __name__ == "__main__":
    main()
