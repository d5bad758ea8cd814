"""
Common schemas for API responses.
"""
from typing import List, Optional

from pydantic import BaseModel


class Message(BaseModel):
    """Generic message response."""

    message: str


class ErrorResponse(BaseModel):
    """Error response schema."""

    success: bool = False
    status: str
    message: str
    errors: Optional[List[str]] = None
