"""
Logging setup and per-source outcome counters.

Counters are a side channel for watching source health; nothing in the
response path reads them.
"""

import logging
import sys
import threading
from collections import Counter

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_SOURCE_OUTCOMES: Counter = Counter()
_SOURCE_OUTCOMES_LOCK = threading.Lock()
_CONFIGURED = False


def configure_logging(level: str = "INFO") -> None:
    """Attach a stdout handler to the root logger once."""
    global _CONFIGURED
    if _CONFIGURED:
        return

    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATE_FORMAT))
    root.addHandler(handler)

    # one INFO line per upstream request otherwise
    for lib in ("httpx", "httpcore"):
        logging.getLogger(lib).setLevel(logging.WARNING)
    _CONFIGURED = True


def record_source_outcome(source: str, outcome: str) -> None:
    with _SOURCE_OUTCOMES_LOCK:
        _SOURCE_OUTCOMES[(source, outcome)] += 1


def source_outcome_counts() -> dict[str, dict[str, int]]:
    """Return ``{source: {outcome: count}}`` for everything recorded so far."""
    with _SOURCE_OUTCOMES_LOCK:
        snapshot = dict(_SOURCE_OUTCOMES)
    counts: dict[str, dict[str, int]] = {}
    for (source, outcome), count in snapshot.items():
        counts.setdefault(source, {})[outcome] = count
    return counts


def reset_source_outcomes() -> None:
    with _SOURCE_OUTCOMES_LOCK:
        _SOURCE_OUTCOMES.clear()
