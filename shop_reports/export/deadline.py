"""Per-export time budget."""

from __future__ import annotations

import time
from typing import Callable

from shop_reports.export.errors import ExportError


class Deadline:
    """Wall-clock budget for one export call; ``seconds <= 0`` never expires."""

    def __init__(self, seconds: float, clock: Callable[[], float] = time.monotonic) -> None:
        self.seconds = seconds
        self._clock = clock
        self._started = clock()

    @property
    def elapsed(self) -> float:
        return self._clock() - self._started

    @property
    def expired(self) -> bool:
        return self.seconds > 0 and self.elapsed > self.seconds

    def check(self, error_cls: type[ExportError], stage: str) -> None:
        """Raise *error_cls* if the budget ran out before *stage* finished."""
        if self.expired:
            raise error_cls(
                f"Export exceeded its {self.seconds:g}s deadline during {stage} "
                f"({self.elapsed:.1f}s elapsed)"
            )
