"""Finalization configuration models.

Config structure:
    signature:
      service: tablet
      base_url: https://crm.example.com/api
      tablet_id: front-desk-1
      timeout_minutes: 15
      poll_interval: 3
      auth_token_env: FINWF_API_TOKEN
    rendering:
      service: http
      base_url: https://crm.example.com/api
      template_id: intake-default
    request_timeout: 10
"""

import os
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from finwf.domain.constants import (
    DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_SIGNATURE_INSTRUCTIONS,
    DEFAULT_SIGNATURE_TIMEOUT_MINUTES,
    DEFAULT_STATUS_POLL_INTERVAL,
    MAX_SIGNATURE_TIMEOUT_MINUTES,
    MIN_SIGNATURE_TIMEOUT_MINUTES,
)


class SignatureConfig(BaseModel):
    """Signature collection service selection and settings."""

    model_config = ConfigDict(extra="forbid")

    service: str = "manual"
    base_url: str | None = None
    tablet_id: str | None = None
    instructions: str = DEFAULT_SIGNATURE_INSTRUCTIONS
    timeout_minutes: int = Field(
        default=DEFAULT_SIGNATURE_TIMEOUT_MINUTES,
        ge=MIN_SIGNATURE_TIMEOUT_MINUTES,
        le=MAX_SIGNATURE_TIMEOUT_MINUTES,
    )
    poll_interval: float = Field(default=DEFAULT_STATUS_POLL_INTERVAL, gt=0)
    auth_token_env: str | None = None


class RenderingConfig(BaseModel):
    """Document rendering service selection and settings."""

    model_config = ConfigDict(extra="forbid")

    service: str = "local"
    base_url: str | None = None
    documents_dir: str | None = None
    template_id: str | None = None
    auth_token_env: str | None = None


class FinalizationConfig(BaseModel):
    """Top-level configuration for finalization runs."""

    model_config = ConfigDict(extra="forbid")

    signature: SignatureConfig = Field(default_factory=SignatureConfig)
    rendering: RenderingConfig = Field(default_factory=RenderingConfig)
    request_timeout: float = Field(default=DEFAULT_REQUEST_TIMEOUT, gt=0)

    def signature_service_config(self) -> dict[str, Any]:
        """Constructor kwargs for the configured signature service.

        The manual service takes no settings.
        """
        sig = self.signature
        if sig.service == "manual":
            return {}
        return {
            "base_url": sig.base_url,
            "tablet_id": sig.tablet_id,
            "instructions": sig.instructions,
            "timeout_minutes": sig.timeout_minutes,
            "poll_interval": sig.poll_interval,
            "auth_token": _read_token(sig.auth_token_env),
            "request_timeout": self.request_timeout,
        }

    def rendering_service_config(self) -> dict[str, Any]:
        """Constructor kwargs for the configured rendering service."""
        ren = self.rendering
        if ren.service == "local":
            return {"documents_dir": ren.documents_dir}
        return {
            "base_url": ren.base_url,
            "template_id": ren.template_id,
            "auth_token": _read_token(ren.auth_token_env),
            "request_timeout": self.request_timeout,
        }


def _read_token(env_var: str | None) -> str | None:
    if not env_var:
        return None
    return os.environ.get(env_var) or None
