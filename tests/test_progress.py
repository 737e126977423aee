"""Tests for progress indicator utilities."""

from io import StringIO

import pytest
from rich.console import Console

from edgeship.core.progress import StepProgress, spinner


class TestStepProgress:
    """Tests for StepProgress class."""

    def test_init(self):
        """Test step progress initialization."""
        steps = ["Step 1", "Step 2", "Step 3"]
        progress = StepProgress(steps, title="Test Progress")

        assert progress._steps == steps
        assert progress._title == "Test Progress"
        assert progress._current == 0

    def test_start_step(self):
        """Test starting a step."""
        console = Console(file=StringIO(), force_terminal=True)
        progress = StepProgress(["Step 1", "Step 2"], console=console)

        progress.start("Step 1")
        assert progress.results["Step 1"] == "running"

    def test_complete_step_success(self):
        """Test completing a step successfully."""
        console = Console(file=StringIO(), force_terminal=True)
        progress = StepProgress(["Step 1", "Step 2"], console=console)

        progress.complete("Step 1", success=True)
        assert progress.results["Step 1"] == "success"
        assert progress._current == 1

    def test_complete_step_failure(self):
        """Test completing a step with failure."""
        console = Console(file=StringIO(), force_terminal=True)
        progress = StepProgress(["Step 1", "Step 2"], console=console)

        progress.complete("Step 1", success=False)
        assert progress.results["Step 1"] == "failed"

    def test_skip_step(self):
        """Test skipping a step."""
        console = Console(file=StringIO(), force_terminal=True)
        progress = StepProgress(["Step 1", "Step 2"], console=console)

        progress.skip("Step 1")
        assert progress.results["Step 1"] == "skipped"

    def test_step_context_failure(self):
        """Test step context manager with failure."""
        console = Console(file=StringIO(), force_terminal=True)
        progress = StepProgress(["Step 1"], console=console)

        with pytest.raises(ValueError):
            with progress.step("Step 1"):
                raise ValueError("test error")

        assert progress.results["Step 1"] == "failed"

    def test_renders_table(self):
        """Test every step appears in the rendered table."""
        output = StringIO()
        console = Console(file=output, force_terminal=False, width=100)
        progress = StepProgress(["Pre-deployment validation", "Deployment execution"], title="Deploying", console=console)

        progress.start("Pre-deployment validation")

        text = output.getvalue()
        assert "Pre-deployment validation" in text
        assert "Deployment execution" in text

    def test_disabled_prints_nothing(self):
        """Test a disabled tracker still records state."""
        output = StringIO()
        console = Console(file=output, force_terminal=True)
        progress = StepProgress(["Step 1"], console=console, enabled=False)

        progress.start("Step 1")
        progress.complete("Step 1")

        assert output.getvalue() == ""
        assert progress.results == {"Step 1": "success"}


class TestSpinner:
    """Tests for the spinner context manager."""

    def test_plain_line_without_terminal(self):
        output = StringIO()
        console = Console(file=output, force_terminal=False)

        with spinner("Installing dependencies...", console=console, success_message="Installed"):
            pass

        text = output.getvalue()
        assert "Installing dependencies..." in text
        assert "Installed" in text

    def test_terminal_spinner(self):
        console = Console(file=StringIO(), force_terminal=True)

        with spinner("Deploying...", console=console):
            pass

    def test_error_message_and_reraise(self):
        output = StringIO()
        console = Console(file=output, force_terminal=False)

        with pytest.raises(RuntimeError):
            with spinner("Building...", console=console, error_message="Build failed"):
                raise RuntimeError("boom")

        assert "Build failed" in output.getvalue()
