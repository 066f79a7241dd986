"""
Configuration for the workflow executor.
"""

import os
from dataclasses import dataclass
from typing import Optional


@dataclass
class Config:
    """Runtime configuration, read from the environment."""

    # Logging
    log_level: str = os.getenv("FLOWEXEC_LOG_LEVEL", "INFO")

    # Execution records and the Database Query step (unset -> records are kept
    # in memory only)
    database_url: Optional[str] = os.getenv("DATABASE_URL")

    # Step limits
    code_timeout_seconds: float = float(os.getenv("CODE_STEP_TIMEOUT_SECONDS", "30"))
    http_timeout_seconds: float = float(os.getenv("HTTP_TIMEOUT_SECONDS", "30"))
    query_timeout_seconds: float = float(os.getenv("DB_QUERY_TIMEOUT_SECONDS", "30"))
    wait_max_seconds: float = float(os.getenv("WAIT_STEP_MAX_SECONDS", "300"))


config = Config()
