from __future__ import annotations

import time
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from typing import Any

from psycopg2.extras import execute_values

"""Batched INSERT on top of psycopg2.extras.execute_values.

PostgreSQL accepts at most 65535 bind parameters per statement, so rows are
chunked so that rows_per_batch * len(columns) stays under the configured
ceiling. Each chunk is one statement; a failure in any chunk raises
BatchInsertError and the caller rolls the whole transaction back.
"""

__all__ = [
    "BatchInsertError",
    "BatchMetrics",
    "InsertResult",
    "rows_per_batch",
    "batch_insert",
]


class BatchInsertError(Exception):
    def __init__(self, message: str, batch_index: int | None = None) -> None:
        super().__init__(message)
        self.batch_index = batch_index


@dataclass(frozen=True)
class BatchMetrics:
    """Metrics data for a single batch insert statement."""
    batch_index: int  # 1-based
    batch_size: int  # Number of rows in this batch
    elapsed_seconds: float  # Time spent on execute_values call
    start_time: float  # Start timestamp (time.time())
    end_time: float  # End timestamp (time.time())


@dataclass(frozen=True)
class InsertResult:
    inserted_rows: int
    batches: int = 0
    returned_values: list[tuple[Any, ...]] | None = None


def rows_per_batch(column_count: int, max_parameters: int, cap: int | None = None) -> int:
    """Largest batch size with ``rows * column_count <= max_parameters``."""
    if column_count < 1:
        raise ValueError("column_count must be >= 1")
    size = max_parameters // column_count
    if size < 1:
        raise ValueError(
            f"max_parameters={max_parameters} cannot fit a single row of {column_count} columns"
        )
    if cap is not None:
        size = min(size, cap)
    return size


def batch_insert(
    cursor: Any,
    table: str,
    columns: Sequence[str],
    rows: Iterable[Sequence[Any]],
    returning: str | None = None,
    max_parameters: int = 65_535,
    template: str | None = None,
    metrics_callback: Callable[[BatchMetrics], None] | None = None,
) -> InsertResult:
    """Insert ``rows`` into ``table`` in parameter-bounded batches.

    Parameters
    ----------
    cursor: psycopg2 cursor (transaction is managed by the caller)
    table: 対象テーブル名 (サニタイズ済み想定)
    columns: 挿入列
    rows: 行シーケンス
    returning: 列リスト文字列 (例 "id, identity_key")。指定時は RETURNING を付与し結果を集約
    max_parameters: 1 文あたりのバインド変数上限
    template: execute_values の VALUES テンプレート (型キャスト用)
    metrics_callback: called once per executed batch with BatchMetrics.
        Not invoked when ``rows`` is empty.
    """
    rows_list = list(rows)
    if not rows_list:
        return InsertResult(inserted_rows=0, batches=0, returned_values=[] if returning else None)

    size = rows_per_batch(len(columns), max_parameters)
    cols_sql = ",".join(f'"{c}"' for c in columns)
    sql = f"INSERT INTO {table} ({cols_sql}) VALUES %s"
    if returning:
        sql += f" RETURNING {returning}"

    returned: list[tuple[Any, ...]] | None = [] if returning else None
    batches = 0
    for offset in range(0, len(rows_list), size):
        chunk = rows_list[offset : offset + size]
        batches += 1
        start_time = time.time()
        try:
            result = execute_values(
                cursor, sql, chunk, template=template, page_size=len(chunk), fetch=bool(returning)
            )
        except Exception as e:
            raise BatchInsertError(f"batch {batches} into {table} failed: {e}", batch_index=batches) from e
        finally:
            end_time = time.time()
            if metrics_callback is not None:
                metrics_callback(
                    BatchMetrics(
                        batch_index=batches,
                        batch_size=len(chunk),
                        elapsed_seconds=end_time - start_time,
                        start_time=start_time,
                        end_time=end_time,
                    )
                )
        if returned is not None and result:
            returned.extend(tuple(r) for r in result)

    return InsertResult(inserted_rows=len(rows_list), batches=batches, returned_values=returned)
