"""
Shared response envelopes.

Every successful API response is wrapped as ``{success, data, message}``;
list endpoints add ``pagination``.
"""

import math
from datetime import datetime
from pydantic import AfterValidator, BaseModel
from typing import Annotated, Generic, List, Optional, TypeVar

from backend.app.core.clock import as_utc

DataT = TypeVar("DataT")

# Datetime normalised to aware UTC on the way in and out
UtcDatetime = Annotated[datetime, AfterValidator(as_utc)]


class ApiResponse(BaseModel, Generic[DataT]):
    success: bool = True
    data: DataT
    message: Optional[str] = None


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "Pagination":
        return cls(page=page, limit=limit, total=total, total_pages=math.ceil(total / limit) if limit else 0)


class PaginatedResponse(BaseModel, Generic[DataT]):
    success: bool = True
    data: List[DataT]
    pagination: Pagination


class StatusMessage(BaseModel):
    success: bool = True
    message: str
