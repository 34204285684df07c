"""Data models for fluent-http.

All models use Pydantic v2. The Request and Response classes themselves are
plain objects (see request.py, response.py); these models describe their
configuration and their recorded, serializable form.
"""

from __future__ import annotations

import ssl
from enum import Enum
from typing import Any, Self

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class HttpMethod(str, Enum):
    """HTTP methods a Request can be built with."""

    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"


# =============================================================================
# Recorded HTTP Models
# =============================================================================


class RequestRecord(BaseModel):
    """Snapshot of a configured Request, as it would be sent.

    Header keys are lowercase. Body is the decoded text for form/JSON
    bodies, or base64 if the bytes are not valid UTF-8.
    """

    model_config = ConfigDict(extra="forbid")

    method: HttpMethod = Field(description="HTTP method")
    url: str = Field(description="Absolute target URL")
    headers: dict[str, str] = Field(
        default_factory=dict, description="Headers applied at dispatch time"
    )
    body: str | None = Field(default=None, description="Body as text if decodable")
    body_base64: str | None = Field(
        default=None, description="Body as base64 if binary (mutually exclusive with body)"
    )
    media_type: str | None = Field(default=None, description="Content-Type of the body")

    @model_validator(mode="after")
    def check_body_exclusivity(self) -> Self:
        if self.body is not None and self.body_base64 is not None:
            raise ValueError("body and body_base64 are mutually exclusive")
        return self


class ResponseRecord(BaseModel):
    """One completed HTTP call's result, detached from the live response.

    Header keys are lowercase. Header values are arrays for repeated headers.
    """

    model_config = ConfigDict(extra="forbid")

    status_code: int = Field(description="HTTP status code")
    headers: dict[str, list[str]] = Field(
        default_factory=dict, description="Response headers (lowercase keys, array values)"
    )
    body: Any = Field(default=None, description="Body as JSON value or text if parseable")
    body_base64: str | None = Field(default=None, description="Body as base64 if binary")
    elapsed_ms: float = Field(description="Response time in milliseconds")
    http_version: str = Field(default="HTTP/1.1", description="Protocol version")

    @model_validator(mode="after")
    def check_body_exclusivity(self) -> Self:
        if self.body is not None and self.body_base64 is not None:
            raise ValueError("body and body_base64 are mutually exclusive")
        return self


# =============================================================================
# Transport Configuration
# =============================================================================


class TransportConfig(BaseModel):
    """Configuration for the default httpx-backed transport."""

    model_config = ConfigDict(extra="forbid")

    timeout: float = Field(default=30.0, description="Default timeout in seconds")
    headers: dict[str, str] = Field(
        default_factory=dict,
        description="Headers sent with every request (supports ${ENV_VAR} substitution)",
    )
    follow_redirects: bool = Field(default=False, description="Follow 3xx redirects")
    verify_ssl: bool = Field(default=True, description="Verify server certificates")
    ca_bundle: str | None = Field(default=None, description="Path to a CA bundle file")
    cert: str | None = Field(default=None, description="Client certificate for mTLS")
    key: str | None = Field(default=None, description="Client private key for mTLS")
    key_password: str | None = Field(default=None, description="Password for the client key")
    ciphers: str | None = Field(default=None, description="OpenSSL cipher string")

    @field_validator("timeout")
    @classmethod
    def check_timeout_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("timeout must be positive")
        return v

    @field_validator("ciphers")
    @classmethod
    def check_ciphers_known(cls, v: str | None) -> str | None:
        if v is not None:
            try:
                ssl.create_default_context().set_ciphers(v)
            except ssl.SSLError as e:
                raise ValueError(f"no usable cipher in {v!r}: {e}") from e
        return v

    @model_validator(mode="after")
    def check_cert_and_key(self) -> Self:
        if (self.cert is None) != (self.key is None):
            raise ValueError("cert and key must be set together")
        if self.key_password is not None and self.key is None:
            raise ValueError("key_password requires key")
        return self

    @property
    def uses_custom_tls(self) -> bool:
        """True if any TLS setting differs from the httpx defaults."""
        return (
            not self.verify_ssl
            or self.ca_bundle is not None
            or self.cert is not None
            or self.ciphers is not None
        )

    def ssl_context(self) -> ssl.SSLContext | None:
        """Build the SSL context for these settings.

        Returns None when every TLS setting is at its default, leaving
        certificate handling to httpx. Otherwise the CA bundle, verification
        mode, cipher list and client certificate all go into one context.

        Raises:
            OSError: If a CA bundle, certificate or key file cannot be loaded
                (ssl.SSLError is a subclass).
        """
        if not self.uses_custom_tls:
            return None

        context = ssl.create_default_context(cafile=self.ca_bundle)
        if not self.verify_ssl:
            # check_hostname must be cleared before verify_mode can drop to CERT_NONE
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
        if self.ciphers:
            context.set_ciphers(self.ciphers)
        if self.cert:
            context.load_cert_chain(self.cert, self.key, self.key_password)
        return context
