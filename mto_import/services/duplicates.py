from __future__ import annotations

from collections.abc import Collection, Sequence

from ..exceptions import DuplicateKeyError
from ..models.component import ExplodedComponent
from ..models.import_result import ImportErrorRecord

"""Duplicate identity key detection.

Two passes over the full candidate set, both before anything is written:

1. in-file: an identity key produced more than once fails the batch. The
   message names every originating row with its raw drawing text, and every
   involved row gets its own error entry.
2. persisted: keys already stored for the project fail the batch with the
   same reporting shape.
"""

__all__ = [
    "find_in_file_duplicates",
    "find_persisted_collisions",
    "ensure_unique_in_file",
    "ensure_not_persisted",
]

_COLUMN = "CMDTY CODE"


def _origin(row: int, drawing_raw: str) -> str:
    return f'row {row} (drawing "{drawing_raw}")'


def _keys_phrase(keys: Sequence[str]) -> str:
    first = f'"{keys[0]}"'
    if len(keys) == 1:
        return first
    return f"{first} and {len(keys) - 1} more"


def find_in_file_duplicates(components: Sequence[ExplodedComponent]) -> list[ImportErrorRecord]:
    occurrences: dict[str, list[tuple[int, str]]] = {}
    for c in components:
        occurrences.setdefault(c.identity_key, []).append((c.row_number, c.drawing_raw))

    # 同じ行の組み合わせで衝突したキーは1件にまとめる (数量展開で大量に出るため)
    groups: dict[tuple[tuple[int, str], ...], list[str]] = {}
    for key, origins in occurrences.items():
        if len(origins) < 2:
            continue
        distinct = tuple(dict.fromkeys(origins))
        groups.setdefault(distinct, []).append(key)

    errors: list[ImportErrorRecord] = []
    for origins, keys in groups.items():
        where = ", ".join(_origin(row, raw) for row, raw in origins)
        noun = "key" if len(keys) == 1 else "keys"
        reason = f"Duplicate identity {noun} {_keys_phrase(keys)} in {where}"
        for row, _ in origins:
            errors.append(ImportErrorRecord(row=row, column=_COLUMN, reason=reason, kind="duplicate"))
    errors.sort(key=lambda e: e.row)
    return errors


def find_persisted_collisions(
    components: Sequence[ExplodedComponent], existing_keys: Collection[str]
) -> list[ImportErrorRecord]:
    if not existing_keys:
        return []
    by_row: dict[tuple[int, str], list[str]] = {}
    for c in components:
        if c.identity_key in existing_keys:
            by_row.setdefault((c.row_number, c.drawing_raw), []).append(c.identity_key)

    errors = []
    for (row, raw), keys in by_row.items():
        if len(keys) == 1:
            lead = f"Identity key {_keys_phrase(keys)} already exists"
        else:
            lead = f"Identity keys {_keys_phrase(keys)} already exist"
        reason = f"{lead} in project; {_origin(row, raw)}"
        errors.append(ImportErrorRecord(row=row, column=_COLUMN, reason=reason, kind="duplicate"))
    errors.sort(key=lambda e: e.row)
    return errors


def ensure_unique_in_file(components: Sequence[ExplodedComponent]) -> None:
    errors = find_in_file_duplicates(components)
    if errors:
        raise DuplicateKeyError(f"{len(errors)} duplicate identity key error(s) in file", errors=errors)


def ensure_not_persisted(components: Sequence[ExplodedComponent], existing_keys: Collection[str]) -> None:
    errors = find_persisted_collisions(components, existing_keys)
    if errors:
        raise DuplicateKeyError(
            f"{len(errors)} row(s) collide with components already in the project", errors=errors
        )
