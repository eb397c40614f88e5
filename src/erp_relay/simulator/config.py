"""
Simulator service configuration

Validated defaults, overridable from the environment variables the
deployment already uses.
"""

import os

from pydantic import BaseModel, Field

DEFAULT_TENANT_ID = "00000000-0000-0000-0000-000000000001"


class SimulatorConfig(BaseModel):
    """Runtime settings of one simulated ERP instance"""

    tenant_id: str = Field(default=DEFAULT_TENANT_ID, min_length=1)
    host: str = "0.0.0.0"
    port: int = Field(default=4001, ge=0, le=65535)
    tick_seconds: float = Field(
        default=600.0, gt=0, description="Wall-clock seconds between live steps"
    )
    step_days: float = Field(default=7.0, gt=0, description="Simulated days per step")
    history_months: int = Field(default=24, ge=0)
    currency: str = Field(default="USD", min_length=3, max_length=3)
    seed: int | None = Field(default=None, description="Seed for a reproducible run")
    disable_history: bool = False
    disable_generator: bool = False
    webhook_timeout_seconds: float = Field(default=5.0, gt=0)
    webhook_workers: int = Field(default=8, ge=1)

    @classmethod
    def from_env(cls, **overrides: object) -> "SimulatorConfig":
        """Build from environment variables; explicit overrides win."""
        values: dict[str, object] = {}
        if tenant := os.getenv("COMPANY_ID"):
            values["tenant_id"] = tenant
        if port := os.getenv("PORT"):
            values["port"] = int(port)
        if tick_ms := os.getenv("ERP_SIM_TICK_MS"):
            values["tick_seconds"] = int(tick_ms) / 1000.0
        if step_days := os.getenv("ERP_SIM_STEP_DAYS"):
            values["step_days"] = float(step_days)
        if months := os.getenv("ERP_SIM_HISTORY_MONTHS"):
            values["history_months"] = int(months)
        if currency := os.getenv("ERP_SIM_BASE_CURRENCY"):
            values["currency"] = currency
        if seed := os.getenv("ERP_SIM_SEED"):
            values["seed"] = int(seed)
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
