"""Append-only CSV telemetry log with a quoted header and timestamped rows."""

from __future__ import annotations

import csv
import logging
from collections.abc import Callable, Sequence
from datetime import datetime
from pathlib import Path
from typing import TextIO

from obdlog.core.errors import FileUnavailableError

LOGGER = logging.getLogger(__name__)


def default_log_name(now: datetime, attempt: int = 0) -> str:
    stamp = int(now.timestamp())
    if attempt:
        return f"obd2_log_{stamp}_{attempt}.csv"
    return f"obd2_log_{stamp}.csv"


def _create(path: Path) -> TextIO:
    try:
        return path.open("x", encoding="utf-8", newline="")
    except FileExistsError:
        raise
    except OSError as exc:
        raise FileUnavailableError(f"Cannot open telemetry log {path}: {exc}") from exc


class TelemetryLogger:
    """One writer per file. Rows are expected to carry `len(columns) - 1` values."""

    def __init__(self, stream: TextIO, path: Path, *, now: Callable[[], datetime] = datetime.now) -> None:
        self.path = path
        self._stream = stream
        self._now = now
        self._header_writer = csv.writer(stream, quoting=csv.QUOTE_ALL, lineterminator="\n")
        self._row_writer = csv.writer(stream, quoting=csv.QUOTE_MINIMAL, lineterminator="\n")

    @classmethod
    def open(
        cls,
        columns: Sequence[str],
        path: str | Path | None = None,
        *,
        directory: str | Path | None = None,
        now: Callable[[], datetime] = datetime.now,
    ) -> TelemetryLogger:
        if path is not None:
            path = Path(path)
            try:
                stream = _create(path)
            except FileExistsError as exc:
                raise FileUnavailableError(f"Telemetry log {path} already exists") from exc
        else:
            started = now()
            attempt = 0
            while True:
                path = Path(directory or ".") / default_log_name(started, attempt)
                try:
                    stream = _create(path)
                    break
                except FileExistsError:
                    attempt += 1

        logger = cls(stream, path, now=now)
        logger._write_header(columns)
        LOGGER.info("Logging %d columns to %s", len(columns), path)
        return logger

    def _write_header(self, columns: Sequence[str]) -> None:
        try:
            self._header_writer.writerow(columns)
            self._stream.flush()
        except OSError as exc:
            self._stream.close()
            raise FileUnavailableError(f"Cannot write telemetry log {self.path}: {exc}") from exc

    def write_row(self, values: Sequence[float]) -> None:
        timestamp = self._now().strftime("%H:%M:%S")
        try:
            self._row_writer.writerow([timestamp, *values])
            self._stream.flush()
        except OSError as exc:
            raise FileUnavailableError(f"Cannot write telemetry log {self.path}: {exc}") from exc

    @property
    def closed(self) -> bool:
        return self._stream.closed

    def close(self) -> None:
        if not self._stream.closed:
            self._stream.close()

    def __enter__(self) -> TelemetryLogger:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
