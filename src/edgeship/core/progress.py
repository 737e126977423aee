"""Progress indicators for the deployment pipeline."""

from contextlib import contextmanager
from typing import Generator

from rich.console import Console
from rich.table import Table


class StepProgress:
    """Track progress through named steps.

    Each step can succeed, fail or be skipped independently. The table is
    re-rendered on every state change so CI logs show the full pipeline.
    """

    def __init__(
        self,
        steps: list[str],
        title: str = "Progress",
        console: Console | None = None,
        enabled: bool = True,
    ):
        """Initialize step progress tracker.

        Args:
            steps: List of step names
            title: Title for the progress display
            console: Console to render to
            enabled: When False, state is tracked but nothing is printed
        """
        self._steps = steps
        self._title = title
        self._current = 0
        self._results: dict[str, str] = {}
        self._console = console or Console()
        self._enabled = enabled

    @property
    def results(self) -> dict[str, str]:
        """Status of every step seen so far."""
        return dict(self._results)

    def start(self, step_name: str) -> None:
        """Mark a step as started."""
        self._results[step_name] = "running"
        self._display()

    def complete(self, step_name: str, success: bool = True) -> None:
        """Mark a step as complete."""
        self._results[step_name] = "success" if success else "failed"
        self._current += 1
        self._display()

    def skip(self, step_name: str) -> None:
        """Mark a step as skipped."""
        self._results[step_name] = "skipped"
        self._current += 1
        self._display()

    def _display(self) -> None:
        if not self._enabled:
            return

        table = Table(title=self._title, show_header=False)
        table.add_column("Status", width=8)
        table.add_column("Step")

        for step in self._steps:
            status = self._results.get(step, "pending")
            if status == "success":
                icon = "[green]✓[/green]"
            elif status == "failed":
                icon = "[red]✗[/red]"
            elif status == "running":
                icon = "[yellow]●[/yellow]"
            else:
                icon = "[dim]○[/dim]"

            table.add_row(icon, step)

        self._console.print(table)

    @contextmanager
    def step(self, name: str) -> Generator[None, None, None]:
        """Context manager for a step; marks success/failure automatically."""
        self.start(name)
        try:
            yield
            self.complete(name, success=True)
        except Exception:
            self.complete(name, success=False)
            raise


@contextmanager
def spinner(
    message: str,
    console: Console | None = None,
    success_message: str | None = None,
    error_message: str | None = None,
) -> Generator[None, None, None]:
    """Spinner for a long-running step.

    Prints a plain line instead when the console is not a terminal.

    Args:
        message: Message to display while spinning
        console: Console to render to
        success_message: Message to display on success
        error_message: Message to display on error
    """
    console = console or Console()
    if not console.is_terminal:
        console.print(f"[dim]{message}[/dim]")
        try:
            yield
        except Exception:
            if error_message:
                console.print(f"[red]✗[/red] {error_message}")
            raise
        if success_message:
            console.print(f"[green]✓[/green] {success_message}")
        return

    status = console.status(message, spinner="dots")
    status.start()
    try:
        yield
        status.stop()
        if success_message:
            console.print(f"[green]✓[/green] {success_message}")
    except Exception:
        status.stop()
        if error_message:
            console.print(f"[red]✗[/red] {error_message}")
        raise
