from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from .component_type import ComponentTypeDef

"""ExplodedComponent: one discrete, individually trackable physical unit."""

__all__ = [
    "ExplodedComponent",
]


@dataclass(frozen=True)
class ExplodedComponent:
    identity_key: str
    component_type: ComponentTypeDef
    drawing_raw: str  # 重複レポート用 (正規化前)
    drawing_norm: str
    row_number: int
    sequence: int | None  # TAG 型は None
    attributes: dict[str, Any]
    metadata: dict[str, str] = field(default_factory=dict)
