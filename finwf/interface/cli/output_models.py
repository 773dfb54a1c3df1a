from typing import Literal
from pydantic import BaseModel, Field


class BaseOutput(BaseModel):
    schema_version: int = 1
    command: Literal["plan", "run", "services"]
    exit_code: int
    error: str | None = None


class PlanOutput(BaseOutput):
    command: Literal["plan"] = "plan"
    collect_signature: bool = False
    show_print_preview: bool = False
    signature_available: bool = False
    sequence: list[str] = Field(default_factory=list)


class RunOutput(BaseOutput):
    command: Literal["run"] = "run"
    # On early errors (bad config) no run exists yet; omit via exclude_none.
    run_id: str | None = None
    document_id: str
    phase: str | None = None
    collect_signature: bool | None = None
    show_print_preview: bool | None = None
    sequence: list[str] = Field(default_factory=list)
    session_id: str | None = None
    signature_status: str | None = None
    signed_document_url: str | None = None


class ServiceSummary(BaseModel):
    """Summary of a registered service for list output."""
    kind: str  # "signature" or "rendering"
    name: str
    description: str
    requires_config: bool = False


class ServiceDetail(BaseModel):
    """Detailed service info for single service view."""
    kind: str
    name: str
    description: str
    requires_config: bool = False
    config_keys: list[str] = Field(default_factory=list)


class ServicesOutput(BaseOutput):
    command: Literal["services"] = "services"
    services: list[ServiceSummary] | None = None
    service: list[ServiceDetail] | None = None
