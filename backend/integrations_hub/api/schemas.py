from pydantic import BaseModel
from typing import Any, Dict, Optional


class SuccessEnvelope(BaseModel):
    success: bool = True
    data: Any = None
    message: Optional[str] = None


class ErrorEnvelope(BaseModel):
    success: bool = False
    error: str


def ok(data: Any = None, message: Optional[str] = None) -> Dict[str, Any]:
    """Success envelope returned by every endpoint"""
    body = {"success": True, "data": data}
    if message:
        body["message"] = message
    return body


def error_body(message: str) -> Dict[str, Any]:
    return ErrorEnvelope(error=message).model_dump()
