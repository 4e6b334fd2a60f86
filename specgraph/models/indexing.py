"""Progress and summary records for an indexing pass."""

from __future__ import annotations

import enum
from typing import Callable, Optional

from pydantic import BaseModel, Field


class IndexingPhase(str, enum.Enum):
    """The four strictly ordered indexing phases."""

    SPECIFICATIONS = "specifications"
    ENDPOINTS = "endpoints"
    SCHEMAS = "schemas"
    RELATIONSHIPS = "relationships"


class IndexingProgress(BaseModel):
    phase: IndexingPhase
    current: int
    total: int
    current_item: Optional[str] = None


ProgressCallback = Callable[[IndexingProgress], None]


class IndexingResult(BaseModel):
    """Summary of one indexing pass.

    Attributes:
        success: ``True`` only when no item failed.
        specifications_indexed: Specification nodes merged.
        endpoints_indexed: Endpoint nodes merged.
        schemas_indexed: Schema nodes merged.
        relationships_created: Relationships merged (skipped ones excluded).
        errors: One message per failed item, with its identifying context.
        duration_ms: Wall-clock duration of the pass.
    """

    success: bool = True
    specifications_indexed: int = 0
    endpoints_indexed: int = 0
    schemas_indexed: int = 0
    relationships_created: int = 0
    errors: list[str] = Field(default_factory=list)
    duration_ms: float = 0.0
