"""CLI commands for the exam attempt engine.

Commands:
- init-db / load-catalog: prepare the database and the question catalog
- start / save / submit / review: drive an attempt from the terminal
- cheat / integrity: anti-cheating events and reports
- questions: per-question accuracy and timing
- leaderboard / reset-attempts: series administration
- serve: run the HTTP API
"""

from contextlib import contextmanager
from pathlib import Path
from typing import Generator

import typer
import yaml
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from exam_engine.config.app_config import load_app_config
from exam_engine.core.engine import AttemptEngine
from exam_engine.core.errors import AttemptEngineError
from exam_engine.core.models import Question, TestSeries
from exam_engine.db.catalog_repository import upsert_question, upsert_series
from exam_engine.db.database import init_db

app = typer.Typer(
    name="exam",
    help="Test attempt engine: timed attempts, grading, integrity and analytics.",
    no_args_is_help=True,
)

console = Console()

DB_OPTION = typer.Option(None, "--db", help="Database file (default: from config)")


def _open_engine(db: str | None) -> AttemptEngine:
    """Initialize the database and build an engine over it."""
    config = load_app_config()
    init_db(db or config.storage.db_path)
    return AttemptEngine(config=config)


@contextmanager
def _engine_errors() -> Generator[None, None, None]:
    """Print engine errors and exit with code 1."""
    try:
        yield
    except AttemptEngineError as e:
        console.print(f"[red]✗ {e}[/red]")
        raise typer.Exit(code=1)


def _parse_answers(answers: list[str]) -> list[dict]:
    """Parse QID=OPT[,OPT...] pairs; an empty right side clears the answer."""
    responses = []
    for raw in answers:
        question_id, sep, options = raw.partition("=")
        if not sep or not question_id:
            console.print(f"[red]✗ Invalid answer '{raw}' (expected QID=OPT1,OPT2)[/red]")
            raise typer.Exit(code=1)
        selected = [o.strip() for o in options.split(",") if o.strip()]
        responses.append({"question_id": question_id.strip(), "selected": selected})
    return responses


# =============================================================================
# DATABASE AND CATALOG
# =============================================================================


@app.command(name="init-db")
def init_db_command(db: str | None = DB_OPTION) -> None:
    """Create the database schema."""
    config = load_app_config()
    path = init_db(db or config.storage.db_path)
    console.print(f"[green]✓ Database ready[/green] [dim]{path}[/dim]")


@app.command(name="load-catalog")
def load_catalog(
    file: str = typer.Argument(..., help="YAML/JSON file with 'series' and 'questions'"),
    db: str | None = DB_OPTION,
) -> None:
    """Load test series and questions into the catalog."""
    path = Path(file).expanduser()
    if not path.exists():
        console.print(f"[red]✗ File not found: {path}[/red]")
        raise typer.Exit(code=1)

    data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        console.print("[red]✗ Catalog file must contain a mapping[/red]")
        raise typer.Exit(code=1)

    config = load_app_config()
    init_db(db or config.storage.db_path)

    try:
        questions = [Question.from_dict(q) for q in data.get("questions", [])]
        series_list = [TestSeries.from_dict(s) for s in data.get("series", [])]
    except (KeyError, TypeError, ValueError) as e:
        console.print(f"[red]✗ Invalid catalog entry: {e}[/red]")
        raise typer.Exit(code=1)

    with _engine_errors():
        for question in questions:
            upsert_question(question)
        for series in series_list:
            upsert_series(series)

    console.print(
        f"[green]✓ Loaded {len(series_list)} series and {len(questions)} questions[/green]"
    )


# =============================================================================
# ATTEMPT LIFECYCLE
# =============================================================================


@app.command()
def start(
    series_id: str = typer.Argument(..., help="Test series ID"),
    student_id: str = typer.Argument(..., help="Student ID"),
    variant: str | None = typer.Option(None, "--variant", "-v", help="Variant code (e.g. A)"),
    strict: bool | None = typer.Option(None, "--strict/--no-strict", help="Force anti-cheating on/off"),
    seed: int | None = typer.Option(None, "--seed", help="Selection seed"),
    db: str | None = DB_OPTION,
) -> None:
    """Start an attempt and show its bound questions."""
    engine = _open_engine(db)

    with _engine_errors():
        result = engine.start(series_id, student_id, variant_code=variant, strict_mode=strict, seed=seed)

    console.print("[green]✓ Attempt started[/green]")
    console.print(f"  [dim]attempt_id:[/dim] {result.attempt_id}")
    console.print(f"  [dim]attempt:[/dim]    #{result.attempt_no}")
    console.print(f"  [dim]time left:[/dim]  {result.time_left_seconds}s")
    if result.variant_code:
        console.print(f"  [dim]variant:[/dim]    {result.variant_code}")
    if result.strict_mode_enabled:
        console.print("  [yellow]strict mode enabled[/yellow]")

    for section in result.bound_sections:
        ids = ", ".join(q["question_id"] for q in section["questions"])
        console.print(f"  [cyan]{section['title']}[/cyan]: {ids}")


@app.command()
def save(
    attempt_id: str = typer.Argument(..., help="Attempt ID"),
    answer: list[str] = typer.Option([], "--answer", "-a", help="QID=OPT1,OPT2 (repeatable)"),
    time_left: int | None = typer.Option(None, "--time-left", help="Seconds left on the client timer"),
    db: str | None = DB_OPTION,
) -> None:
    """Save answers for an in-progress attempt."""
    engine = _open_engine(db)
    responses = _parse_answers(answer)

    with _engine_errors():
        result = engine.save(attempt_id, responses, time_left)

    console.print(
        f"[green]✓ Saved[/green] {result.updated} changed "
        f"[dim](version {result.version}, {result.time_left}s left)[/dim]"
    )


@app.command()
def submit(
    attempt_id: str = typer.Argument(..., help="Attempt ID"),
    answer: list[str] = typer.Option([], "--answer", "-a", help="QID=OPT1,OPT2 (repeatable)"),
    db: str | None = DB_OPTION,
) -> None:
    """Submit and grade an attempt."""
    engine = _open_engine(db)
    responses = _parse_answers(answer)

    with _engine_errors():
        result = engine.submit(attempt_id, responses or None)

    console.print(
        Panel(
            f"[bold]{result.percentage:.2f}%[/bold]\n"
            f"Correct: {result.correct_answers}/{result.total_questions} | "
            f"Score: {result.score:g}/{result.max_score:g}\n"
            f"Time: {result.time_taken_seconds}s",
            title=f"[bold]{attempt_id}[/bold]",
            expand=False,
        )
    )


@app.command()
def review(
    attempt_id: str = typer.Argument(..., help="Attempt ID"),
    db: str | None = DB_OPTION,
) -> None:
    """Show per-question results and analytics for a graded attempt."""
    engine = _open_engine(db)

    with _engine_errors():
        data = engine.review(attempt_id)

    attempt = data["attempt"]
    report = data["analytics"]
    overall = report["performance"]["overall"]

    console.print(
        Panel(
            f"[bold]{attempt['percentage']:.2f}%[/bold] - grade {overall['grade']}\n"
            f"Correct: {overall['correct_answers']} | Incorrect: {overall['incorrect_answers']} | "
            f"Unanswered: {overall['unanswered']}",
            title=f"[bold]{attempt_id}[/bold]",
            expand=False,
        )
    )

    table = Table(show_header=True, header_style="bold")
    table.add_column("#", justify="right", width=4)
    table.add_column("Question", style="cyan")
    table.add_column("Section")
    table.add_column("Status", justify="center")
    table.add_column("Selected")
    table.add_column("Correct")
    table.add_column("Marks", justify="right")

    for item in data["questions"]:
        response = item["response"]
        if response["status"] == "correct":
            status_icon = "[green]✓[/green]"
        elif response["status"] == "incorrect":
            status_icon = "[red]✗[/red]"
        else:
            status_icon = "[yellow]-[/yellow]"
        table.add_row(
            str(item["position"] + 1),
            item["question_id"],
            item["section_title"],
            status_icon,
            ", ".join(response["selected"]),
            ", ".join(item["correct_options"]),
            f"{response['earned']:g}/{item['marks']:g}",
        )

    console.print(table)

    for line in report["recommendations"]:
        console.print(f"  • {line}")


# =============================================================================
# INTEGRITY
# =============================================================================


@app.command()
def cheat(
    attempt_id: str = typer.Argument(..., help="Attempt ID"),
    event_type: str = typer.Argument(..., help="Event type (e.g. tab_switch)"),
    severity: str | None = typer.Option(None, "--severity", "-s", help="low | medium | high"),
    question_index: int = typer.Option(0, "--question-index", "-q"),
    db: str | None = DB_OPTION,
) -> None:
    """Record an integrity event for an attempt."""
    engine = _open_engine(db)
    event = {"type": event_type, "question_index": question_index}
    if severity:
        event["severity"] = severity

    with _engine_errors():
        result = engine.log_cheat_event(attempt_id, event)

    color = {"clean": "green", "flagged": "yellow"}.get(result.integrity_status, "red")
    console.print(
        f"[{color}]{result.integrity_status}[/{color}] "
        f"score {result.cheating_score} ({result.total_cheating_attempts} events)"
    )
    if result.should_terminate:
        console.print("[red]✗ Attempt terminated for integrity violations[/red]")


@app.command()
def integrity(
    attempt_id: str | None = typer.Argument(None, help="Attempt ID (overview when omitted)"),
    db: str | None = DB_OPTION,
) -> None:
    """Show integrity stats for an attempt, or the overview across attempts."""
    engine = _open_engine(db)

    if attempt_id is not None:
        with _engine_errors():
            stats = engine.get_cheating_stats(attempt_id)
        console.print(
            f"[bold]{stats['integrity_status']}[/bold] score {stats['cheating_score']} "
            f"({stats['total_cheating_attempts']} events)"
        )
        for event in stats["events"]:
            console.print(f"  {event['timestamp']}  {event['type']} [dim]({event['severity']})[/dim]")
        return

    with _engine_errors():
        overview = engine.get_integrity_overview()

    table = Table(show_header=True, header_style="bold")
    table.add_column("Status")
    table.add_column("Attempts", justify="right")
    table.add_column("Avg score", justify="right")
    for row in overview["integrity_stats"]:
        table.add_row(row["integrity_status"], str(row["count"]), f"{row['avg_cheating_score']:.2f}")
    console.print(table)

    for row in overview["violation_breakdown"]:
        console.print(f"  {row['type']}: {row['count']}")


# =============================================================================
# QUESTION ANALYTICS
# =============================================================================


@app.command()
def questions(
    question_id: str | None = typer.Argument(None, help="Question ID (hardest/slowest lists when omitted)"),
    limit: int = typer.Option(10, "--limit", "-n"),
    db: str | None = DB_OPTION,
) -> None:
    """Show accuracy and timing of questions across graded attempts."""
    engine = _open_engine(db)

    if question_id is not None:
        with _engine_errors():
            stats = engine.get_question_stats(question_id)
        console.print(
            f"[bold]{question_id}[/bold] accuracy {stats['accuracy']:.2f}% "
            f"({stats['correct']}/{stats['total_responses']}), avg time {stats['average_time']:g}s"
        )
        return

    report = engine.get_question_analytics(limit)
    if not report["questions_tracked"]:
        console.print("[yellow]⚠ No graded attempts yet[/yellow]")
        return

    for title, key in (("Hardest", "hardest"), ("Slowest", "slowest")):
        table = Table(title=title, show_header=True, header_style="bold")
        table.add_column("Question", style="cyan")
        table.add_column("Accuracy %", justify="right")
        table.add_column("Avg time (s)", justify="right")
        table.add_column("Responses", justify="right")
        for entry in report[key]:
            table.add_row(
                entry["question_id"],
                f"{entry['accuracy']:.2f}",
                f"{entry['average_time']:g}",
                str(entry["total_responses"]),
            )
        console.print(table)


# =============================================================================
# SERIES ADMINISTRATION
# =============================================================================


@app.command()
def leaderboard(
    series_id: str = typer.Argument(..., help="Test series ID"),
    limit: int = typer.Option(10, "--limit", "-n"),
    db: str | None = DB_OPTION,
) -> None:
    """Show the top graded attempts of a series."""
    engine = _open_engine(db)

    with _engine_errors():
        entries = engine.get_leaderboard(series_id, limit)

    if not entries:
        console.print("[yellow]⚠ No graded attempts yet[/yellow]")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("Rank", justify="right")
    table.add_column("Student", style="cyan")
    table.add_column("Score", justify="right")
    table.add_column("%", justify="right")
    table.add_column("Submitted")
    for entry in entries:
        table.add_row(
            str(entry["rank"]),
            entry["student_id"],
            f"{entry['score']:g}/{entry['max_score']:g}",
            f"{entry['percentage']:.2f}",
            entry["submitted_at"] or "",
        )
    console.print(table)


@app.command(name="reset-attempts")
def reset_attempts(
    series_id: str = typer.Argument(..., help="Test series ID"),
    student_id: str = typer.Argument(..., help="Student ID"),
    db: str | None = DB_OPTION,
) -> None:
    """Reset a student's attempt count for a series."""
    engine = _open_engine(db)

    with _engine_errors():
        counter = engine.reset_attempt_count(student_id, series_id)

    console.print(f"[green]✓ Attempt count reset[/green] [dim]({counter.count})[/dim]")


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host"),
    port: int = typer.Option(8000, "--port", "-p"),
    reload: bool = typer.Option(False, "--reload"),
) -> None:
    """Run the HTTP API with uvicorn."""
    import uvicorn

    uvicorn.run("exam_engine.web.api:app", host=host, port=port, reload=reload)


if __name__ == "__main__":
    app()
