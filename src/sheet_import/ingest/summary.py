from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from sheet_import.parsing.types import ImportResult


@dataclass(frozen=True)
class ImportSummary:
    """Counts reported at the end of an import."""
    input_path: str
    sheet_index: int
    total: int
    imported: int
    failed: int
    skipped: int
    aborted: bool = False
    cancelled: bool = False

    @classmethod
    def from_result(cls, result: ImportResult[Any], *, input_path: str, sheet_index: int) -> "ImportSummary":
        return cls(
            input_path=input_path,
            sheet_index=sheet_index,
            total=result.total_rows,
            imported=result.success_count,
            failed=result.failed_count,
            skipped=result.skipped_count,
            aborted=result.aborted,
            cancelled=result.cancelled,
        )

    def render_one_line(self) -> str:
        """How the summary is printed to the terminal."""
        line = (
            f"{self.input_path}[{self.sheet_index}]: total={self.total} imported={self.imported} "
            f"failed={self.failed} skipped={self.skipped}"
        )
        if self.aborted:
            line += " aborted"
        if self.cancelled:
            line += " cancelled"
        return line
