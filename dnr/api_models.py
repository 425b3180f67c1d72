from __future__ import annotations

from pydantic import BaseModel, Field


class ReconcileRequest(BaseModel):
    project: str | None = Field(None, description="Project identifier; defaults to DNR_PROJECT")
    environment: str | None = Field(None, description="Environment name, e.g. staging, production")
    domain_base: str | None = Field(None, description="Base domain (naming only)")
    dry_run: bool = Field(False, description="Plan only, do not touch the engine")
