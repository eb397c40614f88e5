"""
Extractor service configuration
"""

import os

from pydantic import BaseModel, Field, field_validator

from erp_relay.simulator.config import DEFAULT_TENANT_ID


class ExtractorConfig(BaseModel):
    """Runtime settings of the ingestion service"""

    tenant_id: str = Field(default=DEFAULT_TENANT_ID, min_length=1)
    simulator_url: str = Field(default="http://localhost:4001")
    public_url: str | None = Field(
        default=None, description="Base URL the simulator should call back; defaults to the bound address"
    )
    host: str = "0.0.0.0"
    port: int = Field(default=4002, ge=0, le=65535)
    poll_seconds: float = Field(default=15.0, gt=0)
    batch_limit: int = Field(default=1000, ge=1, le=10000)
    poll_overlap_seconds: float = Field(
        default=1.0, ge=0, description="Re-read window behind the watermark"
    )
    db_path: str = Field(default="erp_relay.db")
    request_timeout_seconds: float = Field(default=10.0, gt=0)

    @field_validator("simulator_url", "public_url")
    @classmethod
    def strip_trailing_slash(cls, v: str | None) -> str | None:
        return v.rstrip("/") if v else v

    @classmethod
    def from_env(cls, **overrides: object) -> "ExtractorConfig":
        """Build from environment variables; explicit overrides win."""
        values: dict[str, object] = {}
        if tenant := os.getenv("COMPANY_ID"):
            values["tenant_id"] = tenant
        if port := os.getenv("PORT"):
            values["port"] = int(port)
        if base_url := os.getenv("ERP_SIM_BASE_URL"):
            values["simulator_url"] = base_url
        if public_url := os.getenv("ERP_EXTRACTOR_PUBLIC_URL"):
            values["public_url"] = public_url
        if poll_ms := os.getenv("ERP_EXTRACTOR_POLL_MS"):
            values["poll_seconds"] = int(poll_ms) / 1000.0
        if db_path := os.getenv("DATABASE_PATH"):
            values["db_path"] = db_path
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
