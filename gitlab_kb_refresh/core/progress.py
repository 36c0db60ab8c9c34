"""Progress reporting for knowledge base refresh runs.

A refresh reports its phase and position through an optional synchronous
callback taking a RefreshProgress. Different callbacks send updates to
different destinations:

- LoggingProgressCallback: Logs each event (used by the Docket worker)
- CLIProgressCallback: Prints a styled line per event to the terminal

Callbacks are always invoked through safe_emit(); an exception raised by a
callback is logged and never affects the run.

Example:
    orchestrator = RefreshOrchestrator(...)
    await orchestrator.execute_refresh(tenant_id, progress_callback=CLIProgressCallback())
"""

import logging
import sys
from enum import Enum
from typing import Callable, Optional

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class RefreshPhase(str, Enum):
    """Phases of a refresh run, in execution order."""

    PULLING = "pulling"
    CONVERTING = "converting"
    ARCHIVING = "archiving"
    CLEARING = "clearing"
    UPLOADING = "uploading"
    DONE = "done"
    ERROR = "error"


class RefreshProgress(BaseModel):
    """A single progress event."""

    phase: RefreshPhase
    current: int = 0
    total: int = 0
    current_file: Optional[str] = Field(default=None, description="File being processed")
    message: Optional[str] = Field(default=None, description="Error or status message")


ProgressCallback = Callable[[RefreshProgress], None]


def safe_emit(callback: Optional[ProgressCallback], progress: RefreshProgress) -> None:
    """Invoke a progress callback, logging (not raising) any callback error."""
    if callback is None:
        return
    try:
        callback(progress)
    except Exception as e:
        logger.warning(f"Progress callback failed during {progress.phase.value}: {e}")


def format_progress(progress: RefreshProgress) -> str:
    """Render a progress event as a one-line human-readable message."""
    text = f"{progress.phase.value} {progress.current}/{progress.total}"
    if progress.current_file:
        text += f" {progress.current_file}"
    if progress.message:
        text += f" - {progress.message}"
    return text


class LoggingProgressCallback:
    """Callback that logs progress events. Useful for background workers."""

    def __init__(self, logger_name: str = __name__, level: int = logging.INFO):
        self._logger = logging.getLogger(logger_name)
        self._level = level

    def __call__(self, progress: RefreshProgress) -> None:
        level = logging.ERROR if progress.phase == RefreshPhase.ERROR else self._level
        self._logger.log(level, f"[refresh] {format_progress(progress)}")


class CLIProgressCallback:
    """Callback that prints progress events to the terminal for CLI usage.

    Formats output with colors/symbols based on the phase for better
    readability in terminal environments.
    """

    # ANSI color codes
    COLORS = {
        "reset": "\033[0m",
        "dim": "\033[2m",
        "blue": "\033[34m",
        "green": "\033[32m",
        "yellow": "\033[33m",
        "cyan": "\033[36m",
        "magenta": "\033[35m",
    }

    PHASE_STYLES = {
        RefreshPhase.PULLING: ("📥", "blue"),
        RefreshPhase.CONVERTING: ("⚙️ ", "cyan"),
        RefreshPhase.ARCHIVING: ("📦", "magenta"),
        RefreshPhase.CLEARING: ("🧹", "yellow"),
        RefreshPhase.UPLOADING: ("📤", "blue"),
        RefreshPhase.DONE: ("✅", "green"),
        RefreshPhase.ERROR: ("❌", "yellow"),
    }

    def __init__(self, use_colors: bool = True, file=None):
        """Initialize CLI callback.

        Args:
            use_colors: Whether to use ANSI colors (disable for non-TTY output)
            file: Output file (defaults to sys.stderr)
        """
        self._file = file or sys.stderr
        self._use_colors = use_colors and self._file.isatty()

    def _colorize(self, text: str, color: str) -> str:
        """Apply ANSI color to text if colors are enabled."""
        if not self._use_colors or color not in self.COLORS:
            return text
        return f"{self.COLORS[color]}{text}{self.COLORS['reset']}"

    def __call__(self, progress: RefreshProgress) -> None:
        symbol, color = self.PHASE_STYLES.get(progress.phase, ("•", "dim"))
        print(f"{symbol} {self._colorize(format_progress(progress), color)}", file=self._file, flush=True)
