"""
Centralized configuration using pydantic-settings.

How it works:
- Reads environment variables automatically (e.g., JOB_TIMEOUT env var → Settings.JOB_TIMEOUT)
- Falls back to defaults defined here if env vars are not set
- Can also read from a .env file in the project root

These values are only DEFAULTS. Every knob can also be passed directly to
WorkerPool.run(), which wins over whatever is configured here. The
performance state itself (history windows, multipliers) is never stored
here — it lives in explicit objects created per run.
"""

from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # ── Worker pool ─────────────────────────────────────────────
    WORKER_POOL_SIZE: int = Field(default=2, ge=1)     # concurrent worker slots (N)
    JOB_TIMEOUT: float = Field(default=60.0, gt=0)     # per-job ceiling (seconds)
    MIN_JOB_TIMEOUT: float = Field(default=5.0, gt=0)  # floor when the timeout is adaptive
    ADAPTIVE_JOB_TIMEOUT: bool = False                 # scale JOB_TIMEOUT by the category multiplier
    BATCH_TIMEOUT: float = Field(default=1800.0, gt=0)  # whole-run ceiling (seconds)
    BATCH_GRACE_PERIOD: float = Field(default=5.0, ge=0)  # wait for in-flight jobs after batch timeout
    MAX_FAILURES: Optional[int] = Field(default=None, ge=1)  # abort the batch after N failed jobs

    # ── Retry ───────────────────────────────────────────────────
    RETRY_MIN_DELAY: float = Field(default=0.1, ge=0)  # floor for any backoff delay (seconds)
    DEFAULT_CATEGORY: Literal[
        "navigation", "interaction", "element_search", "network", "remote_operation", "save"
    ] = "interaction"                                  # category for jobs that don't name one

    # ── Adaptive timing ─────────────────────────────────────────
    ADAPTIVE_TIMING_ENABLED: bool = True
    PERFORMANCE_WINDOW_SIZE: int = Field(default=50, ge=1)  # samples kept per category
    RECOMPUTE_EVERY: int = Field(default=10, ge=1)          # recompute level every k samples
    RECOMPUTE_INTERVAL: float = Field(default=300.0, gt=0)  # ...or after this many seconds
    MIN_SAMPLES: int = Field(default=5, ge=1)               # samples needed before leaving "normal"

    # ── Progress ────────────────────────────────────────────────
    PROGRESS_BUFFER_SIZE: int = Field(default=100, ge=1)  # snapshots buffered for a slow sink

    # ── App ─────────────────────────────────────────────────────
    LOG_LEVEL: str = "INFO"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


# Singleton — import this everywhere
settings = Settings()
