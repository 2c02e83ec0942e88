"""Candle file loading (CSV)."""

from __future__ import annotations

import csv
import io
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator

from pydantic import ValidationError

from signal_core.errors import DataFetchError, ErrorCode
from signal_core.models.candle import Candle

logger = logging.getLogger(__name__)

COLUMNS = ("timestamp", "open", "high", "low", "close", "volume")


def parse_time(value: str) -> datetime:
    """Epoch seconds, epoch milliseconds or ISO-8601. Naive values are UTC."""
    value = value.strip()
    if value.replace(".", "", 1).isdigit():
        ts = float(value)
        if ts > 1e11:
            ts /= 1000
        return datetime.fromtimestamp(ts, tz=timezone.utc)
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def iter_csv_candles(text: str) -> Iterator[Candle]:
    """Stream-parse candle rows; a header row and malformed rows are skipped.

    Columns are timestamp, open, high, low, close and optional volume. With a
    header, columns are matched by name (case-insensitive, "time"/"date" accepted).
    """
    reader = csv.reader(io.StringIO(text))
    index = {name: i for i, name in enumerate(COLUMNS)}
    for row in reader:
        if not row:
            continue
        head = [c.strip().lower() for c in row]
        if "open" in head and "close" in head:
            time_col = next((c for c in ("timestamp", "time", "date", "datetime") if c in head), None)
            if time_col is None:
                continue
            index = {"timestamp": head.index(time_col)}
            index.update({name: head.index(name) for name in COLUMNS[1:] if name in head})
            continue
        try:
            volume_col = index.get("volume")
            yield Candle(
                timestamp=parse_time(row[index["timestamp"]]),
                open=float(row[index["open"]]),
                high=float(row[index["high"]]),
                low=float(row[index["low"]]),
                close=float(row[index["close"]]),
                volume=float(row[volume_col]) if volume_col is not None and volume_col < len(row) else 0.0,
            )
        except (ValueError, IndexError, KeyError, ValidationError):
            logger.debug(f"Skipping malformed row: {row}")
            continue


def load_candles_csv(path: Path | str) -> list[Candle]:
    """Load candles sorted oldest first, one per timestamp.

    Raises:
        DataFetchError: If the file is missing or has no usable rows.
    """
    csv_path = Path(path)
    if not csv_path.exists():
        raise DataFetchError(f"Candle file not found: {csv_path}", source="csv", code=ErrorCode.SOURCE_UNAVAILABLE)

    candles = {c.timestamp: c for c in iter_csv_candles(csv_path.read_text(encoding="utf-8"))}
    if not candles:
        raise DataFetchError(f"No valid candles in {csv_path}", source="csv", code=ErrorCode.PARSE_ERROR)

    result = [candles[ts] for ts in sorted(candles)]
    logger.info(f"Loaded {len(result)} candles from {csv_path}")
    return result
