"""Execution result models.

Exactly one of these populates an Execution's result per run. A failed run
stores its ExecutionError in the same slot.
"""

from typing import TYPE_CHECKING, Any, Optional, Union

from pydantic import BaseModel, Field

from db_connect_session.utils import convert_rows_to_json_safe

if TYPE_CHECKING:
    from db_connect_session.exceptions import ExecutionError


class RowSet(BaseModel):
    """All rows returned by a read statement."""

    rows: list[dict[str, Any]] = Field(
        default_factory=list, description="Result rows as dictionaries"
    )

    @property
    def row_count(self) -> int:
        """Number of rows returned."""
        return len(self.rows)

    @property
    def is_empty(self) -> bool:
        """Check if result set is empty."""
        return not self.rows

    @property
    def columns(self) -> list[str]:
        """Column names of the first row, in order."""
        return list(self.rows[0].keys()) if self.rows else []

    def get_column_values(self, column: str) -> list[Any]:
        """Extract all values for a specific column."""
        return [row.get(column) for row in self.rows]

    def to_json_safe(self) -> list[dict[str, Any]]:
        """Rows with database types converted to JSON-serializable values."""
        return convert_rows_to_json_safe(self.rows)


class SingleRow(BaseModel):
    """The first row of a read statement run with ``single_row=True``."""

    row: Optional[dict[str, Any]] = Field(
        None, description="First row, or None when nothing matched"
    )

    @property
    def is_empty(self) -> bool:
        """Check if no row matched."""
        return self.row is None


class MutationSummary(BaseModel):
    """Outcome of an INSERT, UPDATE or DELETE."""

    last_insert_id: Optional[int] = Field(
        None, description="Id generated by the last insert, if any"
    )
    rows_affected: int = Field(0, description="Rows changed by the statement")


class SchemaResult(BaseModel):
    """Outcome of a CREATE statement."""

    success: bool = Field(True, description="Whether the schema change ran")


class PassthroughResult(BaseModel):
    """Outcome of a statement that is not classified (SHOW, DROP, ALTER, ...)."""

    rows_affected: int = Field(
        -1, description="Backend row count (-1 when not reported)"
    )
    rows: Optional[list[dict[str, Any]]] = Field(
        None, description="Rows, when the statement returned any"
    )


Result = Union[
    RowSet, SingleRow, MutationSummary, SchemaResult, PassthroughResult, "ExecutionError"
]
