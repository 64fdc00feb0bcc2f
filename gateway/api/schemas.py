"""
Request and response models for the gateway API.
"""

from pydantic import BaseModel, Field, field_validator
from typing import Optional, List, Dict, Any


class BroadcastRequest(BaseModel):
    operations: List[List[Any]]

    @field_validator('operations')
    @classmethod
    def operations_must_not_be_empty(cls, v):
        if not v:
            raise ValueError('operations cannot be empty')
        return v


class BroadcastResponse(BaseModel):
    result: Dict[str, Any]


class PrepareRequest(BaseModel):
    operation: str
    params: Dict[str, Any] = {}
    base64: Optional[str] = None

    @field_validator('operation')
    @classmethod
    def operation_must_not_be_empty(cls, v):
        if not v.strip():
            raise ValueError('operation cannot be empty')
        return v


class PreparedOperationResponse(BaseModel):
    operation: str
    params: Dict[str, Any]
    normalized_query: Dict[str, Any]


class PrepareResponse(BaseModel):
    operations: List[PreparedOperationResponse]


class RegisterRequest(BaseModel):
    name: str
    password: str

    @field_validator('name')
    @classmethod
    def name_must_be_valid(cls, v):
        v = v.strip().lower()
        if not 3 <= len(v) <= 16:
            raise ValueError('name must be between 3 and 16 characters')
        return v

    @field_validator('password')
    @classmethod
    def password_must_not_be_empty(cls, v):
        if not v:
            raise ValueError('password cannot be empty')
        return v


class RegisterResponse(BaseModel):
    success: bool
    message: str


class MetadataUpdateRequest(BaseModel):
    user_metadata: Any = None


class MeResponse(BaseModel):
    user: str
    id: str = Field(serialization_alias="_id")
    name: str
    account: Optional[Dict[str, Any]] = None
    scope: List[str]
    user_metadata: Optional[Dict[str, Any]] = None


class RevokeResponse(BaseModel):
    success: bool
    revoked: int = 0


class HealthResponse(BaseModel):
    status: str
    version: str
    db_health: bool
    operation_count: int


class FieldErrorResponse(BaseModel):
    field: str
    error: str
    values: Dict[str, str] = {}


class ErrorResponse(BaseModel):
    error: str
    error_description: str
    errors: Optional[List[FieldErrorResponse]] = None
