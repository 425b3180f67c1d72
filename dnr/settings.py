from __future__ import annotations

import os
from dataclasses import dataclass


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    # Core
    db_path: str = os.getenv("DNR_DB_PATH", "dnr.db")
    record_runs: bool = _env_bool("DNR_RECORD_RUNS", True)
    topology_path: str | None = os.getenv("DNR_TOPOLOGY_PATH")

    # Deployment identity (the deploy scripts default the project to the working directory name)
    project: str = os.getenv("DNR_PROJECT", os.path.basename(os.getcwd()))
    environment: str = os.getenv("DNR_ENVIRONMENT", "staging")
    domain_base: str = os.getenv("DNR_DOMAIN_BASE", "")

    # Proxy manager ports, only used when rendering deployment scripts
    npm_admin_port: int = _env_int("DNR_NPM_ADMIN_PORT", 81)
    npm_http_port: int = _env_int("DNR_NPM_HTTP_PORT", 80)
    npm_https_port: int = _env_int("DNR_NPM_HTTPS_PORT", 443)


settings = Settings()
