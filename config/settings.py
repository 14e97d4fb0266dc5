"""
Centralized configuration using pydantic-settings.

How it works:
- Reads environment variables automatically (e.g., LEASE_DURATION env var → Settings.LEASE_DURATION)
- Falls back to defaults defined here if env vars are not set
- Can also read from a .env file in the project root

Every process (API, worker agent, lease monitor) imports `settings` from here.
The lease timings are validated together: a worker that heartbeats less often
than its lease expires would lose every job it claims.
"""

import os
import socket

from pydantic import model_validator
from pydantic_settings import BaseSettings

ALL_TARGETS = [
    "amd64",
    "arm64",
    "loongarch64",
    "loongson3",
    "mips64r6el",
    "ppc64el",
    "riscv64",
]


def _default_worker_id() -> str:
    return f"{socket.gethostname()}:{os.getpid()}"


class Settings(BaseSettings):
    # ── PostgreSQL (Job Store) ──────────────────────────────────
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str = "buildfleet"
    POSTGRES_PASSWORD: str = "buildfleet"
    POSTGRES_DB: str = "buildfleet"

    # ── Redis (Queue + notifications) ───────────────────────────
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_PASSWORD: str | None = None
    QUEUE_KEY_PREFIX: str = "buildfleet"

    # ── Leasing ─────────────────────────────────────────────────
    LEASE_DURATION: float = 60.0             # seconds a claim stays valid without a heartbeat
    HEARTBEAT_INTERVAL: float = 20.0         # must be < LEASE_DURATION
    MAX_ATTEMPTS: int = 3                    # lease losses before a job is Lost
    LEASE_MONITOR_SCAN_INTERVAL: float = 10.0

    # ── Worker identity ─────────────────────────────────────────
    WORKER_TARGET: str = "amd64"
    WORKER_ID: str = ""                      # empty → hostname:pid
    WORKER_ONLINE_TIMEOUT: float = 600.0     # registry heartbeat age before a worker counts as offline
    SUBSCRIBE_BLOCK_TIMEOUT: int = 1         # BLPOP timeout, lets loops observe stop()

    # ── Build environment ───────────────────────────────────────
    BUILD_ENVIRONMENT: str = "command"       # "command" | "simulated"
    BUILD_COMMAND: str = "ciel-build"
    BUILD_TREE: str = ""                     # checkout whose HEAD is reported as git_commit
    BUILD_TIMEOUT: float = 6 * 3600.0
    BUILD_LOG_DIR: str = "/var/log/buildfleet"
    BUILD_LOG_BASE_URL: str = ""

    # ── Targets ─────────────────────────────────────────────────
    KNOWN_TARGETS: list[str] = ALL_TARGETS
    TARGET_GROUPS: dict[str, list[str]] = {"mainline": ALL_TARGETS}

    # ── Transient failure retry ─────────────────────────────────
    RETRY_BACKOFF_BASE: float = 1.0          # exponential backoff base (seconds)
    RETRY_BACKOFF_MAX: float = 60.0
    RETRY_MAX_TRIES: int = 5

    # ── App ─────────────────────────────────────────────────────
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000
    LOG_LEVEL: str = "INFO"

    @model_validator(mode="after")
    def _check_lease_timings(self) -> "Settings":
        if self.HEARTBEAT_INTERVAL >= self.LEASE_DURATION:
            raise ValueError(
                f"HEARTBEAT_INTERVAL ({self.HEARTBEAT_INTERVAL}) must be less than "
                f"LEASE_DURATION ({self.LEASE_DURATION})"
            )
        if self.MAX_ATTEMPTS < 1:
            raise ValueError("MAX_ATTEMPTS must be at least 1")
        return self

    @property
    def worker_id(self) -> str:
        return self.WORKER_ID or _default_worker_id()

    @property
    def database_url(self) -> str:
        """Async connection string for FastAPI (uses asyncpg driver)."""
        return (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    @property
    def sync_database_url(self) -> str:
        """Sync connection string for the store, worker agents and lease monitor (psycopg2)."""
        return (
            f"postgresql+psycopg2://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    @property
    def redis_url(self) -> str:
        auth = f":{self.REDIS_PASSWORD}@" if self.REDIS_PASSWORD else ""
        return f"redis://{auth}{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


# Singleton — import this everywhere
settings = Settings()
