"""Request and response models for the remote signing API."""

from __future__ import annotations

import base64
import binascii
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


def _decode_base64(value: Any) -> bytes:
    if isinstance(value, bytes):
        return value
    if not isinstance(value, str):
        raise ValueError("expected a base64 encoded string")
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueError("not valid base64") from exc


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============================================================================
# Form Models
# ============================================================================


class FormModelResponse(CamelModel):
    """Options for the configuration form of one signing variant."""

    signature_forms: list[str] = Field(..., description="Selectable signature forms")
    signature_levels: list[str] = Field(..., description="Selectable signature levels")
    digest_algorithms: list[str] = Field(..., description="Digest algorithms allowed for this variant")
    default_digest_algorithm: Optional[str] = Field(None, description="Pre-selected digest algorithm")
    container_types: list[str] = Field(default_factory=list, description="ASiC container types (multi-document only)")
    download_nexu_url: str = Field(..., description="Where to download the signing agent")
    is_mock_used: bool = Field(..., description="Whether content timestamps come from a mock source")


class SigningProcessResponse(CamelModel):
    """Returned after a configuration has been accepted."""

    root_url: str = Field(..., description="Route prefix for the next signing calls")
    nexu_url: str = Field(..., description="URL of the external signing agent")
    digest_algorithm: str = Field(..., description="Digest algorithm chosen for this run")
    state: str = Field(..., description="Session state after configuration")


class ConfigurationRejectedResponse(CamelModel):
    """Configuration errors plus the form options so the form can be re-displayed."""

    error: str = "invalid_configuration"
    message: str
    errors: list[str]
    form: FormModelResponse


# ============================================================================
# Signing Process Models
# ============================================================================


class DataToSignParams(CamelModel):
    """Certificate material sent by the signing agent."""

    signing_certificate: bytes = Field(..., description="Base64 DER signing certificate")
    certificate_chain: list[bytes] = Field(default_factory=list, description="Base64 DER chain, leaf to root")
    encryption_algorithm: str = Field(..., description="Key algorithm of the signing certificate")

    @field_validator("signing_certificate", mode="before")
    @classmethod
    def _decode_certificate(cls, value: Any) -> bytes:
        decoded = _decode_base64(value)
        if not decoded:
            raise ValueError("signing certificate must not be empty")
        return decoded

    @field_validator("certificate_chain", mode="before")
    @classmethod
    def _decode_chain(cls, value: Any) -> list[bytes]:
        if value is None:
            return []
        if not isinstance(value, list):
            raise ValueError("expected a list of base64 encoded certificates")
        return [_decode_base64(item) for item in value]


class GetDataToSignResponse(CamelModel):
    data_to_sign: str = Field(..., description="Base64 data the signing agent must sign")


class SignatureValueRequest(CamelModel):
    signature_value: bytes = Field(..., description="Base64 signature value produced by the signing agent")

    @field_validator("signature_value", mode="before")
    @classmethod
    def _decode_signature(cls, value: Any) -> bytes:
        decoded = _decode_base64(value)
        if not decoded:
            raise ValueError("signature value must not be empty")
        return decoded


class SignDocumentResponse(CamelModel):
    url_to_download: str = Field(..., description="Relative URL of the signed document")


# ============================================================================
# Service Models
# ============================================================================


class ErrorResponse(BaseModel):
    """Standard error response."""

    error: str = Field(..., description="Error type")
    message: str = Field(..., description="Human-readable error message")
    details: Optional[dict[str, Any]] = Field(None, description="Additional error details")
    timestamp: datetime = Field(..., description="When error occurred")
    request_id: Optional[str] = Field(None, description="Request ID for tracing")


class HealthStatus(BaseModel):
    status: str = Field(..., description="Service status")
    engine: str = Field(..., description="mock or dss")
    active_sessions: int = Field(..., description="Sessions currently held in memory")
    timestamp: datetime = Field(..., description="Health check timestamp")
