"""Configuration models for smarttable."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, model_validator


class TableLimits(BaseModel):
    """Size limits enforced by :class:`~smarttable.Table` mutations."""

    model_config = ConfigDict(frozen=True)

    max_rows: int = Field(10, ge=1, description="Maximum number of rows")
    min_rows: int = Field(1, ge=1, description="Minimum number of rows")
    max_columns: int = Field(10, ge=1, description="Maximum number of columns")
    min_columns: int = Field(1, ge=1, description="Minimum number of columns")
    max_label_length: int = Field(50, ge=1, le=50, description="Maximum column label length")

    @model_validator(mode="after")
    def _check_bounds(self) -> TableLimits:
        if self.min_rows > self.max_rows:
            raise ValueError("min_rows cannot exceed max_rows")
        if self.min_columns > self.max_columns:
            raise ValueError("min_columns cannot exceed max_columns")
        return self

    @property
    def max_cells(self) -> int:
        """Upper bound on the length of any acyclic reference chain."""
        return self.max_rows * self.max_columns
