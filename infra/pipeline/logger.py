import json
import logging
import os
import sys
from datetime import datetime
from pathlib import Path


# Extra fields copied onto the JSON line when a record carries them.
LOG_FIELDS = (
    "job_id",
    "book_id",
    "page_id",
    "component",
    "batch_id",
    "external_ref",
    "model",
    "stage",
    "attempt",
    "cost_usd",
    "tokens",
    "duration_seconds",
    "count",
    "status",
    "error",
)

_STDLIB_KWARGS = ("exc_info", "stack_info", "stacklevel")


class FlushingFileHandler(logging.FileHandler):
    """Flush on every record so tailing a job log shows progress live."""
    def emit(self, record):
        super().emit(record)
        self.flush()


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.now().astimezone().isoformat(),
            "level": record.levelname,
            "message": record.getMessage(),
        }
        entry.update(
            (field, getattr(record, field)) for field in LOG_FIELDS if hasattr(record, field)
        )
        if record.exc_info:
            entry["traceback"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class PipelineLogger:
    """Append-only JSONL log at {log_dir}/{name}.jsonl.

    Keyword context given at construction (job_id, component, ...) is
    stamped on every line. Nothing touches the filesystem until the first
    message, so idle jobs leave no empty files behind.
    """
    def __init__(self, name: str, log_dir: Path, level: str = None, console: bool = False, **context):
        self.name = name
        self.path = Path(log_dir) / f"{name}.jsonl"
        self.level = level or ("DEBUG" if os.getenv("DEBUG") == "1" else "INFO")
        self.console = console
        self.context = {k: v for k, v in context.items() if v is not None}
        self._logger = None

    @property
    def logger(self) -> logging.Logger:
        if self._logger is None:
            self._logger = self._build()
        return self._logger

    def _build(self) -> logging.Logger:
        logger = logging.getLogger(f"scriptorium.{self.name}.{id(self)}")
        logger.setLevel(self.level.upper())
        logger.propagate = False

        self.path.parent.mkdir(parents=True, exist_ok=True)
        handler = FlushingFileHandler(self.path, mode="a")
        handler.setFormatter(JSONFormatter())
        logger.addHandler(handler)

        if self.console:
            echo = logging.StreamHandler(sys.stdout)
            echo.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
            logger.addHandler(echo)
        return logger

    def log(self, level: int, message: str, **fields):
        passthrough = {k: fields.pop(k) for k in _STDLIB_KWARGS if k in fields}
        self.logger.log(level, message, extra={**self.context, **fields}, **passthrough)

    def debug(self, message: str, **fields):
        self.log(logging.DEBUG, message, **fields)

    def info(self, message: str, **fields):
        self.log(logging.INFO, message, **fields)

    def warning(self, message: str, **fields):
        self.log(logging.WARNING, message, **fields)

    def error(self, message: str, **fields):
        self.log(logging.ERROR, message, **fields)

    def close(self):
        if self._logger is None:
            return
        for handler in list(self._logger.handlers):
            handler.close()
            self._logger.removeHandler(handler)
        self._logger = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


def job_logger(storage_root: Path, job_id: str, **kwargs) -> PipelineLogger:
    """logs/jobs/{job_id}.jsonl"""
    return PipelineLogger(job_id, Path(storage_root) / "logs" / "jobs", job_id=job_id, **kwargs)


def component_logger(storage_root: Path, component: str, **kwargs) -> PipelineLogger:
    """logs/{component}.jsonl"""
    return PipelineLogger(component, Path(storage_root) / "logs", component=component, **kwargs)
