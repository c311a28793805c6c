"""Interactive CLI application."""
import asyncio
import logging
import time

from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.progress import BarColumn, Progress, TextColumn
from rich.prompt import Confirm, IntPrompt, Prompt
from rich.table import Table
from rich.tree import Tree

from practice_tutor.config import get_settings
from practice_tutor.content import fetch_content_nodes, list_routes
from practice_tutor.db import init_db
from practice_tutor.errors import FeedbackError, InvalidSelection, NoQuestionsAvailable
from practice_tutor.feedback import MIN_REASONING_LENGTH, OpenAIFeedbackService, generate_feedback
from practice_tutor.hierarchy import resolve_tree, subtopics_of, topics
from practice_tutor.models import SelectionMode, SessionConfig
from practice_tutor.report import get_score_color, get_score_label, summarize_session
from practice_tutor.review import rank_error_history
from practice_tutor.seed import is_seeded, seed_all
from practice_tutor.selection import prepare_questions
from practice_tutor.session import SessionRunner

console = Console()
logger = logging.getLogger(__name__)

EXIT_WORDS = ("q", "menu")

MODE_CHOICES = {
    "subtopics": SelectionMode.BY_SUBTOPICS,
    "topics": SelectionMode.BY_TOPICS,
    "route": SelectionMode.BY_FULL_ROUTE,
    "errors": SelectionMode.BY_ERROR_HISTORY,
}


class SessionExitRequested(Exception):
    """Raised when the user types q or menu during a session."""


def session_prompt(prompt: str, **kwargs) -> str:
    answer = Prompt.ask(prompt, **kwargs)
    if answer.strip().lower() in EXIT_WORDS:
        raise SessionExitRequested()
    return answer


def session_int_prompt(prompt: str, choices: list) -> int:
    answer = session_prompt(prompt, choices=choices + list(EXIT_WORDS))
    return int(answer)


def parse_numbers(text: str, valid: range) -> list:
    """Parse "1, 3" into [1, 3], dropping anything outside `valid`."""
    numbers = []
    for part in text.replace(" ", "").split(","):
        if part.isdigit() and int(part) in valid and int(part) not in numbers:
            numbers.append(int(part))
    return numbers


def show_welcome():
    console.print(Panel(
        "[bold]Practice Tutor[/bold]\n[dim]Timed practice with interleaving and reasoning feedback[/dim]",
        title="Welcome", border_style="blue",
    ))


def show_menu():
    console.print("\n[bold]Commands:[/bold]")
    commands = [
        ("practice", "Start a timed practice session"),
        ("routes", "Show study routes and their topics"),
        ("errors", "Subtopics you miss most often"),
        ("quit", "Exit"),
    ]
    for cmd, desc in commands:
        console.print(f"  [cyan]{cmd:<14}[/cyan] {desc}")


def render_tree(route_name: str, tree: list) -> Tree:
    root = Tree(f"[bold]{route_name}[/bold]")
    for topic in tree:
        branch = root.add(f"[cyan]{topic.name or '(unnamed)'}[/cyan]")
        for child in topic.children:
            branch.add(child.name or "(unnamed)")
    return root


def show_question(runner: SessionRunner) -> list:
    state = runner.state
    question = state.current_question
    letters = [chr(ord("a") + i) for i in range(len(question.options))]
    title = f"Question {state.current_index + 1}/{len(state.questions)}"
    subtitle = f"{runner.time_remaining}s"
    if question.topic_name:
        title += f"  [dim]{question.topic_name}{' / ' + question.subtopic_name if question.subtopic_name else ''}[/dim]"
    console.print(Panel(question.prompt, title=title, subtitle=subtitle, border_style="cyan"))
    for letter, option in zip(letters, question.options):
        console.print(f"  [cyan]{letter})[/cyan] {option}")
    return letters


def recorded_answer(choice: str, question) -> str:
    """What to store for a chosen option letter.

    Letter codes only cover A-D; options past D are stored as their text.
    """
    index = ord(choice.strip().lower()) - ord("a")
    if index < 4:
        return choice.strip().upper()
    return question.options[index]


def show_result(result) -> None:
    if result.timed_out:
        console.print("[red]Time's up![/red]", end=" ")
    if result.is_correct:
        console.print("[green]Correct![/green]")
    else:
        console.print(f"[red]Incorrect.[/red] Answer: [green]{result.question.answer_key}[/green]")
    if result.question.explanation:
        console.print(f"[dim]{result.question.explanation}[/dim]")
    console.print()


def _timed_prompt(runner: SessionRunner, prompt: str, **kwargs):
    """Ask while the question clock runs. Returns (answer, result-if-time-ran-out)."""
    started = time.monotonic()
    answer = session_prompt(prompt, **kwargs)
    result = runner.elapse(time.monotonic() - started)
    return answer, result


def run_practice_session(runner: SessionRunner, questions: list) -> list:
    """Run the session to completion. Raises SessionExitRequested if the user quits."""
    runner.start(questions)
    console.print(f"\n[bold]Practice[/bold]: {len(questions)} questions, "
                  f"{runner.config.time_per_question}s each. Type q to stop.\n")
    try:
        while runner.running:
            letters = show_question(runner)
            answer, result = _timed_prompt(runner, "\nYour answer", choices=letters + list(EXIT_WORDS))
            if result is None:
                runner.select_answer(recorded_answer(answer, runner.current_question))
            while result is None and runner.config.reasoning_enabled:
                reasoning, result = _timed_prompt(
                    runner, f"Explain your reasoning (at least {MIN_REASONING_LENGTH} characters)",
                )
                if result is not None:
                    break
                runner.set_reasoning(reasoning)
                result = runner.submit()
                if result is None:
                    console.print(f"[yellow]Please write at least {MIN_REASONING_LENGTH} characters.[/yellow]")
            if result is None:
                result = runner.submit()
            if result is not None:
                show_result(result)
    except SessionExitRequested:
        runner.abandon()
        raise
    return runner.results


def show_report(results: list) -> None:
    summary = summarize_session(results)
    color = get_score_color(summary["score"])
    console.print(Panel(
        f"Score: [bold]{summary['correct']}/{summary['total']}[/bold] "
        f"([{color}]{summary['score']}% {get_score_label(summary['score'])}[/{color}])\n"
        f"Timed out: {summary['timed_out']}  |  Avg time: {summary['avg_time']}s",
        title="Session Complete", border_style="green",
    ))
    table = Table(title="By Topic")
    table.add_column("Topic", style="cyan")
    table.add_column("Correct", justify="right")
    table.add_column("Score", justify="right")
    for row in summary["topics"]:
        table.add_row(row["topic_name"], f"{row['correct']}/{row['total']}", f"{row['score']}%")
    console.print(table)


def run_feedback(db_path: str, requests: list) -> None:
    """Generate reasoning feedback for a finished session, showing progress as it lands."""
    if not requests:
        return
    settings = get_settings()
    try:
        service = OpenAIFeedbackService(
            api_key=settings.openai_api_key,
            model=settings.feedback_model,
            timeout=settings.feedback_timeout,
        )
    except FeedbackError as e:
        console.print(f"[yellow]Reasoning feedback skipped: {e}[/yellow]")
        return

    questions = {r.attempt_id: r.question for r in requests}
    with Progress(TextColumn("Generating feedback"), BarColumn(), TextColumn("{task.completed}/{task.total}")) as progress:
        task = progress.add_task("feedback", total=len(requests))

        def on_progress(tally, event):
            progress.update(task, completed=tally.settled)

        tally = asyncio.run(generate_feedback(requests, service, db_path, on_progress=on_progress))

    for attempt_id, outcome in tally.results.items():
        question = questions[attempt_id]
        if isinstance(outcome, str):
            console.print(Panel(f"[red]Feedback unavailable:[/red] {outcome}", title=question.prompt[:60]))
            continue
        console.print(Panel(
            f"[bold]First principles:[/bold] {outcome.technique1Feedback}\n\n"
            f"[bold]Reverse engineering:[/bold] {outcome.technique2Feedback}\n\n"
            f"[bold]Overall:[/bold] {outcome.overallFeedback}",
            title=question.prompt[:60], border_style="magenta",
        ))
    console.print(f"[dim]{tally.completed} of {tally.total} feedbacks generated[/dim]")


def choose_route(db_path: str, user_id: str):
    routes = list_routes(db_path, user_id)
    if not routes:
        console.print("[yellow]No study routes yet.[/yellow]")
        return None
    for i, route in enumerate(routes, 1):
        console.print(f"  [cyan]{i}[/cyan]) {route.name}")
    index = session_int_prompt("Select route", choices=[str(i) for i in range(1, len(routes) + 1)])
    return routes[index - 1]


def configure_session(mode: SelectionMode) -> SessionConfig:
    defaults = get_settings().session_defaults()
    time_per_question = IntPrompt.ask("Seconds per question", default=defaults.time_per_question)
    questions_per_leaf = IntPrompt.ask("Questions per subtopic", default=defaults.questions_per_leaf)
    max_leaves = defaults.max_leaves_for_error_history
    if mode == SelectionMode.BY_ERROR_HISTORY:
        max_leaves = IntPrompt.ask("Maximum subtopics to review", default=max_leaves)
    return SessionConfig(
        mode=mode,
        time_per_question=max(time_per_question, 1),
        questions_per_leaf=max(questions_per_leaf, 1),
        interleaving_enabled=Confirm.ask("Interleave topics?", default=True),
        reasoning_enabled=Confirm.ask("Explain your reasoning for feedback?", default=False),
        max_leaves_for_error_history=max(max_leaves, 1),
    )


def cmd_practice(db_path: str, user_id: str):
    console.print("\n[bold]Practice Session[/bold]")
    mode = MODE_CHOICES[Prompt.ask("Mode", choices=list(MODE_CHOICES), default="subtopics")]
    tree, topic_ids, subtopic_ids = [], [], []

    if mode != SelectionMode.BY_ERROR_HISTORY:
        route = choose_route(db_path, user_id)
        if route is None:
            return
        tree = resolve_tree(fetch_content_nodes(db_path, route.id))
        available = topics(tree)
        if mode != SelectionMode.BY_FULL_ROUTE:
            for i, topic in enumerate(available, 1):
                console.print(f"  [cyan]{i}[/cyan]) {topic.name}")
        if mode == SelectionMode.BY_SUBTOPICS and available:
            index = session_int_prompt("Select topic", choices=[str(i) for i in range(1, len(available) + 1)])
            topic = available[index - 1]
            topic_ids = [topic.id]
            children = subtopics_of(topic)
            if children:
                for i, sub in enumerate(children, 1):
                    console.print(f"    [cyan]{i}[/cyan]) {sub.name}")
                picked = parse_numbers(session_prompt("Subtopics (e.g. 1,2)"), range(1, len(children) + 1))
                subtopic_ids = [children[i - 1].id for i in picked]
        elif mode == SelectionMode.BY_TOPICS:
            picked = parse_numbers(session_prompt("Topics (e.g. 1,3)"), range(1, len(available) + 1))
            topic_ids = [available[i - 1].id for i in picked]

    config = configure_session(mode)
    try:
        questions = prepare_questions(db_path, config, tree, topic_ids, subtopic_ids, user_id=user_id)
    except (NoQuestionsAvailable, InvalidSelection) as e:
        console.print(f"[yellow]{e}[/yellow]")
        return

    runner = SessionRunner(
        db_path, config, user_id,
        feedback_launcher=lambda requests: run_feedback(db_path, requests),
    )
    try:
        results = run_practice_session(runner, questions)
    except SessionExitRequested:
        console.print("[dim]Session abandoned.[/dim]")
        return
    show_report(results)


def cmd_routes(db_path: str, user_id: str):
    routes = list_routes(db_path, user_id)
    if not routes:
        console.print("[yellow]No study routes yet.[/yellow]")
        return
    for route in routes:
        tree = resolve_tree(fetch_content_nodes(db_path, route.id))
        console.print(render_tree(route.name, tree))
        if route.objective:
            console.print(f"  [dim]{route.objective}[/dim]")


def cmd_errors(db_path: str, user_id: str):
    max_entries = get_settings().max_leaves_for_error_history
    entries = rank_error_history(db_path, user_id, max_entries)
    if not entries:
        console.print("[green]No practice errors recorded yet.[/green]")
        return
    table = Table(title="Most Missed Subtopics")
    table.add_column("Subtopic", style="cyan")
    table.add_column("Topic")
    table.add_column("Errors", justify="right")
    for entry in entries:
        table.add_row(entry.subtopic_name or "-", entry.topic_name, str(entry.error_count))
    console.print(table)


def setup_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )


def main():
    settings = get_settings()
    setup_logging(settings.log_level)
    db_path = settings.db_path
    user_id = settings.user_id
    init_db(db_path)
    first_run = not is_seeded(db_path)
    if first_run:
        console.print("[dim]Setting up for first use...[/dim]")
    seed_all(db_path, user_id)
    if first_run:
        console.print("[green]Ready![/green]\n")

    show_welcome()

    while True:
        show_menu()
        choice = Prompt.ask("\n[bold]>[/bold]", default="practice").strip().lower()
        try:
            if choice == "practice":
                cmd_practice(db_path, user_id)
            elif choice == "routes":
                cmd_routes(db_path, user_id)
            elif choice == "errors":
                cmd_errors(db_path, user_id)
            elif choice in ("quit", "exit", "q"):
                console.print("[dim]Keep practicing![/dim]")
                break
            else:
                console.print("[red]Unknown command. Try again.[/red]")
        except SessionExitRequested:
            console.print("[dim]Back to menu.[/dim]")
        except KeyboardInterrupt:
            console.print("\n[dim]Use 'quit' to exit.[/dim]")
        except Exception as e:
            logger.exception("Command %s failed", choice)
            console.print(f"[red]Error: {e}[/red]")


if __name__ == "__main__":
    main()
