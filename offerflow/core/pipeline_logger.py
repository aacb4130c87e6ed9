"""Console and file logging for workflow runs.

Gives the orchestrator and phases one place to report:
- Workflow start/end with total elapsed time and model usage per stage
- Stage headers (offer count, model) and one-line stage results
- Structured key=value fields appended to messages
- Optional per-workflow log files, every line tagged with the workflow id

Library modules keep using ``logging.getLogger(__name__)``; their records
reach the workflow file through the ``offerflow`` logger hierarchy.
"""

import logging
import sys
import time
from pathlib import Path
from typing import Any

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}

_MAX_FIELD_CHARS = 50
_MAX_LIST_ITEMS = 5


def format_fields(fields: dict[str, Any]) -> str:
    """Render ``fields`` as ``k=v, ...`` with long strings and lists shortened."""
    parts = []
    for key, value in fields.items():
        if isinstance(value, str) and len(value) > _MAX_FIELD_CHARS:
            value = value[:_MAX_FIELD_CHARS - 3] + "..."
        elif isinstance(value, (list, tuple, set)) and len(value) > _MAX_LIST_ITEMS:
            value = f"[{len(value)} items]"
        elif isinstance(value, float):
            value = f"{value:.6g}"
        parts.append(f"{key}={value}")
    return ", ".join(parts)


def _duration(seconds: float) -> str:
    minutes, secs = divmod(seconds, 60)
    if minutes >= 1:
        return f"{int(minutes)}m {secs:.0f}s"
    return f"{secs:.1f}s"


class _WorkflowTag(logging.Filter):
    """Stamp file records with the id of the workflow being logged."""

    def __init__(self, workflow_id: str):
        super().__init__()
        self.workflow_id = workflow_id

    def filter(self, record: logging.LogRecord) -> bool:
        record.workflow_id = self.workflow_id
        return True


CONSOLE_FORMAT = logging.Formatter("[%(asctime)s] %(message)s", datefmt="%H:%M:%S")
FILE_FORMAT = logging.Formatter(
    "%(asctime)s.%(msecs)03d [%(levelname).4s] %(workflow_id)s %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)


class PipelineLogger:
    """Workflow-level logger wrapping one stdlib logger."""

    def __init__(self, name: str = "offerflow", verbose: bool = False, log_dir: str | Path | None = None):
        """
        Args:
            name: Logger name; child loggers of it also reach the workflow file.
            verbose: Show DEBUG records on the console.
            log_dir: Directory for per-workflow log files. None disables them.
        """
        self.logger = logging.getLogger(name)
        self.logger.setLevel(logging.DEBUG)
        self.verbose = verbose
        self.log_dir = Path(log_dir) if log_dir else None
        self.workflow_id = ""
        self.log_file: Path | None = None
        self._workflow_started = 0.0
        self._stage_started = 0.0
        self._file_handler: logging.FileHandler | None = None

        self._console = next(
            (h for h in self.logger.handlers if getattr(h, "name", "") == "offerflow-console"),
            None,
        )
        if self._console is None:
            self._console = logging.StreamHandler(sys.stderr)
            self._console.set_name("offerflow-console")
            self._console.setFormatter(CONSOLE_FORMAT)
            self.logger.addHandler(self._console)
        self.set_verbose(verbose)

    def set_verbose(self, verbose: bool):
        self.verbose = verbose
        self._console.setLevel(logging.DEBUG if verbose else logging.INFO)

    # -- generic records -----------------------------------------------------

    def log(self, level: str, message: str, exc: BaseException | None = None, **fields):
        """Emit ``message`` at ``level`` with optional fields and exception."""
        if fields:
            message = f"{message} | {format_fields(fields)}"
        if exc is not None:
            message = f"{message} | {type(exc).__name__}: {exc}"
        self.logger.log(_LEVELS[level], message)

    def debug(self, message: str, **fields):
        self.log("debug", message, **fields)

    def info(self, message: str, **fields):
        self.log("info", message, **fields)

    def warning(self, message: str, **fields):
        self.log("warning", f"WARN: {message}", **fields)

    def error(self, message: str, exc: BaseException | None = None, **fields):
        self.log("error", f"ERROR: {message}", exc=exc, **fields)

    def milestone(self, message: str, **fields):
        self.log("info", f"-> {message}", **fields)

    # -- workflow lifecycle --------------------------------------------------

    def start_workflow(self, workflow_id: str, stages: list[str] | None = None):
        """Open the workflow's log file (if configured) and log its stage plan."""
        self._close_file()
        self.workflow_id = workflow_id
        self._workflow_started = time.monotonic()

        if self.log_dir:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            self.log_file = self.log_dir / f"{workflow_id}_{time.strftime('%Y%m%d_%H%M%S')}.log"
            self._file_handler = logging.FileHandler(self.log_file, encoding="utf-8")
            self._file_handler.setLevel(logging.DEBUG)
            self._file_handler.setFormatter(FILE_FORMAT)
            self._file_handler.addFilter(_WorkflowTag(workflow_id))
            self.logger.addHandler(self._file_handler)

        plan = f" ({' -> '.join(stages)})" if stages else ""
        self.logger.info(f"Starting workflow: {workflow_id}{plan}")

    def end_workflow(self, state: str, cost: dict[str, Any] | None = None):
        """Log the terminal state, model usage per stage, and close the log file."""
        if cost:
            self._log_usage(cost)
        elapsed = _duration(time.monotonic() - self._workflow_started) if self._workflow_started else ""
        self.logger.info(f"Workflow {self.workflow_id} {state.upper()} [{elapsed}]")
        if self.log_file:
            self.logger.info(f"Log: {self.log_file}")
        self._close_file()

    def _log_usage(self, cost: dict[str, Any]):
        stages = cost.get("stages", {})
        totals = {k: v for k, v in cost.items() if k != "stages"}
        lines = [f"Model usage: {format_fields(totals)}"]
        lines.extend(f"  {stage}: {format_fields(figures)}" for stage, figures in stages.items())
        self.logger.info("\n".join(lines))

    def _close_file(self):
        if self._file_handler is None:
            return
        self.logger.removeHandler(self._file_handler)
        self._file_handler.close()
        self._file_handler = None
        self.log_file = None

    # -- stages --------------------------------------------------------------

    def start_stage(self, stage: str, total: int = 0, model: str = ""):
        """Log a stage header, e.g. ``ANALYZE (12 offers, gemini-2.5-flash)``."""
        self._stage_started = time.monotonic()
        details = []
        if total > 0:
            details.append(f"{total} offers")
        if model:
            details.append(model.rsplit("/", 1)[-1])
        suffix = f" ({', '.join(details)})" if details else ""
        self.logger.info(f"{stage.upper()}{suffix}")

    def stage_result(self, stage: str, result: str, **metrics):
        """Log one line summing up a finished stage."""
        parts = [result]
        if metrics:
            parts.append(format_fields(metrics))
        if self._stage_started:
            parts.append(f"[{time.monotonic() - self._stage_started:.1f}s]")
            self._stage_started = 0.0
        self.logger.info(f"  {stage} done: {' | '.join(parts)}")


# Global logger instance
_logger: PipelineLogger | None = None


def get_logger(verbose: bool = False, log_dir: str | Path | None = None) -> PipelineLogger:
    """Get the process-wide workflow logger, widening its settings if asked."""
    global _logger
    if _logger is None:
        _logger = PipelineLogger(verbose=verbose, log_dir=log_dir)
        return _logger
    if verbose and not _logger.verbose:
        _logger.set_verbose(True)
    if log_dir and _logger.log_dir is None:
        _logger.log_dir = Path(log_dir)
    return _logger


def reset_logger():
    """Drop the global logger, closing any open workflow file (for testing)."""
    global _logger
    if _logger is not None:
        _logger._close_file()
    _logger = None
