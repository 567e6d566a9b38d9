from pydantic import BaseModel
from typing import Optional


class ErrorResponse(BaseModel):
    status: str = "error"
    message: str
    details: Optional[str] = None
    url: Optional[str] = None


class AssetErrorResponse(BaseModel):
    error: str
    details: Optional[str] = None
