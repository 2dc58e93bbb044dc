from typing import Any, Generic, List, Optional, TypeVar
from pydantic import BaseModel

T = TypeVar("T")


class RequestInfo(BaseModel):
    method: str
    path: str
    app_id: int


class HealthStatus(BaseModel):
    status: str
    version: str


class Envelope(BaseModel, Generic[T]):
    success: bool = True
    data: Optional[T] = None
    message: Optional[str] = None


class ErrorData(BaseModel):
    errorKind: str
    seat_numbers: Optional[List[str]] = None
    errors: Optional[List[Any]] = None


class ErrorResponse(BaseModel):
    success: bool = False
    data: ErrorData
    message: Optional[str] = None
