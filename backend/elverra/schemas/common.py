"""Response envelope shared by all endpoints."""

from typing import Generic, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """``{"success": true, "data": ...}``."""

    success: bool = True
    data: T


class Acknowledgement(BaseModel):
    """Bare ``{"success": true}`` returned to payment gateways."""

    success: bool = True
