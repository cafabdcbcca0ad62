"""
Logging setup shared by the API process and the Celery workers.

Two sinks on the root logger:
- console, one readable line per record
- a daily CSV file under LOG_DIR, 30 days kept

Context travels in `extra`; the CSV picks up the keys listed in CSV_FIELDS
and leaves a cell empty when a record does not carry one:

    logger.warning("Push of a.txt failed", extra={"session_id": sid, "error": e.message})
"""

import csv
import io
import logging
import os
from datetime import datetime
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path

LOG_DIR = Path(os.getenv("REPODESK_LOG_DIR", Path(__file__).parent.parent.parent / "logs"))
LOG_LEVEL = os.getenv("REPODESK_LOG_LEVEL", "INFO").upper()

CONSOLE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Columns after timestamp/level/module/message come from record extras
EXTRA_FIELDS = ["session_id", "repository_id", "file_id", "task_id", "error"]
CSV_FIELDS = ["timestamp", "level", "module", "message", *EXTRA_FIELDS]

QUIET_LOGGERS = ("httpx", "httpcore", "hpack", "postgrest", "storage3")


class CsvFormatter(logging.Formatter):
    """One CSV line per record; csv.writer does the quoting."""

    def format(self, record: logging.LogRecord) -> str:
        message = record.getMessage()
        if record.exc_info:
            message = f"{message}\n{self.formatException(record.exc_info)}"

        row = [self.formatTime(record, self.datefmt), record.levelname, record.name, message]
        row.extend(getattr(record, name, "") for name in EXTRA_FIELDS)

        buffer = io.StringIO()
        csv.writer(buffer, quoting=csv.QUOTE_MINIMAL).writerow(row)
        return buffer.getvalue().rstrip("\r\n")


class CsvRotatingFileHandler(TimedRotatingFileHandler):
    """Rotates at midnight and starts every new file with the header row."""

    def _open(self):
        needs_header = not os.path.exists(self.baseFilename) or os.path.getsize(self.baseFilename) == 0
        stream = super()._open()
        if needs_header:
            stream.write(",".join(CSV_FIELDS) + "\n")
            stream.flush()
        return stream


def _csv_handler() -> CsvRotatingFileHandler:
    LOG_DIR.mkdir(parents=True, exist_ok=True)
    handler = CsvRotatingFileHandler(
        filename=LOG_DIR / f"repodesk_{datetime.now():%Y_%m_%d}.csv",
        when="midnight",
        backupCount=30,
        encoding="utf-8",
    )
    handler.setFormatter(CsvFormatter(datefmt=DATE_FORMAT))
    return handler


def setup_logging(level: int | str = LOG_LEVEL) -> None:
    """
    Attach the console and CSV handlers to the root logger.

    Safe to call more than once (FastAPI lifespan, Celery logger signals).
    """
    root = logging.getLogger()
    if any(isinstance(h, CsvRotatingFileHandler) for h in root.handlers):
        return

    root.setLevel(level)

    console = logging.StreamHandler()
    console.setFormatter(logging.Formatter(CONSOLE_FORMAT, DATE_FORMAT))
    root.addHandler(console)
    root.addHandler(_csv_handler())

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
