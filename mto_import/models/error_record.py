from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import UTC, datetime

"""ErrorRecord model for the server-side error log.

Persistence failures are reported to the user with a generic message; the full
database detail is kept here and written as JSON Lines by ErrorLogBuffer.
row=0 marks errors that are not tied to a specific takeoff row.

Schema: mto_import/logging/error_log_schema.json
"""

__all__ = [
    "ErrorRecord",
]


@dataclass(frozen=True)
class ErrorRecord:
    """Structured error record for JSON Lines logging.

    Attributes:
        timestamp: ISO8601 UTC timestamp with 'Z' suffix
        file: Takeoff file name (or "<bytes>" when imported from memory)
        project_id: Target project
        row: Row number (header = 1). Use 0 for file-level errors
        error_type: Error classification in UPPER_SNAKE_CASE format
        db_message: Database error message or description
    """
    timestamp: str  # ISO8601 UTC
    file: str
    project_id: str
    row: int
    error_type: str  # UPPER_SNAKE
    db_message: str

    @staticmethod
    def create(file: str, project_id: str, row: int, error_type: str, db_message: str) -> ErrorRecord:
        ts = datetime.now(UTC).isoformat().replace("+00:00", "Z")
        return ErrorRecord(
            timestamp=ts,
            file=file,
            project_id=project_id,
            row=row,
            error_type=error_type,
            db_message=db_message,
        )

    def to_json_line(self) -> str:
        # 追加キー阻止: dataclass -> dict して json.dumps
        return json.dumps(asdict(self), ensure_ascii=False)
