"""
Response envelope schemas shared by every route
"""

from typing import Any, Optional
from pydantic import BaseModel

class StandardResponse(BaseModel):
    """Envelope for successful calls"""
    success: bool
    message: str
    data: Optional[Any] = None

class ErrorResponse(BaseModel):
    """Envelope for failures; ``error_code`` is the stable machine-readable part"""
    success: bool = False
    message: str
    error_code: Optional[str] = None
    details: Optional[Any] = None

class Pagination(BaseModel):
    page: int
    per_page: int
    total: int

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.per_page

    @property
    def pages(self) -> int:
        return (self.total + self.per_page - 1) // self.per_page

    def to_dict(self) -> dict:
        return {**self.model_dump(), "pages": self.pages}
