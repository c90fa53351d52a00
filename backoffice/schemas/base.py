# ================================
# BASE SCHEMAS (schemas/base.py)
# ================================

from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional, Dict, Any
from datetime import datetime
import re

class BaseSchema(BaseModel):
    """Base Schema mit gemeinsamer Konfiguration"""
    model_config = ConfigDict(
        from_attributes=True,  # Pydantic v2: ermöglicht ORM integration
        str_strip_whitespace=True,
        validate_assignment=True
    )

class TimestampMixin(BaseModel):
    """Mixin für Timestamp-Felder"""
    created_at: datetime = Field(..., description="Creation timestamp")
    updated_at: datetime = Field(..., description="Last update timestamp")

# ================================
# SUCCESS RESPONSE SCHEMA
# ================================

class SuccessResponse(BaseSchema):
    """Standard Success Response Schema"""
    message: str = Field(..., description="Success message")
    data: Optional[Dict[str, Any]] = Field(None, description="Additional data")

# ================================
# COMMON FIELD VALIDATORS
# ================================

class EmailFieldMixin:
    """Mixin für Email-Validierung"""

    @field_validator('email')
    @classmethod
    def validate_email_format(cls, v: str) -> str:
        return v.lower()

class PasswordFieldMixin:
    """Mixin für Password-Validierung"""

    @field_validator('password')
    @classmethod
    def validate_password(cls, v: str) -> str:
        if len(v) < 8:
            raise ValueError('Password must be at least 8 characters long')
        if not re.search(r'[A-Za-z]', v):
            raise ValueError('Password must contain at least one letter')
        if not re.search(r'\d', v):
            raise ValueError('Password must contain at least one number')
        return v
