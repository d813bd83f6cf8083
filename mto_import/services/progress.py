from __future__ import annotations

import sys
from typing import Any

from tqdm import tqdm
from tqdm.std import tqdm as TqdmType

from ..db.batch_insert import BatchMetrics

"""Progress display for component batch inserts (tqdm, TTY only).

A single tqdm bar counts inserted components. In non-TTY environments (CI,
piped output) no bar is created so logs stay free of control sequences.
"""

__all__ = [
    "BatchProgress",
    "is_tty_enabled",
]


def is_tty_enabled() -> bool:
    return sys.stdout.isatty()


class BatchProgress:
    """Component insert progress bar fed by BatchMetrics callbacks."""

    def __init__(self, total_components: int, *, description: str = "Inserting components") -> None:
        self.total_components = total_components
        self.description = description
        self.inserted = 0
        self.batches = 0

        self.enabled = is_tty_enabled() and total_components > 0
        self.pbar: TqdmType[Any] | None
        if self.enabled:
            self.pbar = tqdm(
                total=total_components,
                desc=description,
                unit="comp",
                leave=True,
                position=0,
                ncols=80,
                ascii=True,
            )
        else:
            self.pbar = None

    def on_batch(self, metrics: BatchMetrics) -> None:
        self.batches += 1
        self.inserted += metrics.batch_size
        if self.pbar is not None:
            self.pbar.update(metrics.batch_size)
            self.pbar.set_postfix(batch=metrics.batch_index)

    def close(self) -> None:
        if self.pbar is not None:
            self.pbar.close()
            self.pbar = None

    def __enter__(self) -> BatchProgress:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
