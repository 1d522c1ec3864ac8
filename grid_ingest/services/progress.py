from __future__ import annotations

import sys
from typing import Any

from tqdm import tqdm
from tqdm.std import tqdm as TqdmType

"""Record progress display with tqdm (TTY only).

In non-TTY environments (CI, pipes) no bar is created so no ANSI control
sequences end up in captured output.
"""

__all__ = [
    "RecordProgress",
    "is_tty_enabled",
]


def is_tty_enabled() -> bool:
    return sys.stdout.isatty()


class RecordProgress:
    """Progress bar over the records of one batch.

    Tracks ok/failed counts and shows them as the bar postfix.
    """

    def __init__(self, total_records: int, *, description: str = "Writing records", enabled: bool = True) -> None:
        self.total_records = total_records
        self.description = description
        self.ok = 0
        self.failed = 0

        self.enabled = enabled and is_tty_enabled()
        self.pbar: TqdmType[Any] | None
        if self.enabled:
            self.pbar = tqdm(
                total=total_records,
                desc=description,
                unit="rec",
                disable=False,
                leave=True,
                position=0,
                ncols=80,
                ascii=True,
            )
        else:
            self.pbar = None

    def advance(self, success: bool) -> None:
        if success:
            self.ok += 1
        else:
            self.failed += 1
        if self.enabled and self.pbar is not None:
            self.pbar.update(1)
            self.pbar.set_postfix(ok=self.ok, failed=self.failed)

    def close(self) -> None:
        if self.enabled and self.pbar is not None:
            self.pbar.close()
            self.pbar = None

    def __enter__(self) -> RecordProgress:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
