"""
config.py - Environment configuration and logging setup

Settings come from the process environment, with a .env file (if one is
found) loaded first:

    TICKETING_UNLOCK_DURATION            blocks before an unlocked deposit is withdrawable
    TICKETING_STAKE_UNLOCK_DURATION      blocks before unlocking stake is withdrawable
    TICKETING_BURN_PENALTY_ON_SHORTFALL  burn the penalty when escrow cannot cover a win
    TICKETING_VERBOSE                    log every executed transaction
    TICKETING_LOG_LEVEL                  loguru level for configure_logging()
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Optional
import os
import sys

from dotenv import find_dotenv, load_dotenv
from loguru import logger

from .core import DEFAULT_UNLOCK_DURATION, DEFAULT_STAKE_UNLOCK_DURATION

load_dotenv(find_dotenv('.env'))

_TRUE_VALUES = {"1", "true", "yes", "on"}


def _env_bool(key: str, default: bool) -> bool:
    value = os.getenv(key)
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


def _env_int(key: str, default: int) -> int:
    value = os.getenv(key)
    if value is None or not value.strip():
        return default
    try:
        parsed = int(value)
    except ValueError as e:
        raise ValueError(f"{key} must be an integer, got {value!r}") from e
    if parsed < 0:
        raise ValueError(f"{key} must be non-negative, got {parsed}")
    return parsed


LOG_LEVEL = os.getenv("TICKETING_LOG_LEVEL", default="INFO")


@dataclass(frozen=True, slots=True)
class LedgerConfig:
    """Settings for a reference Ledger."""
    unlock_duration: int = DEFAULT_UNLOCK_DURATION
    stake_unlock_duration: int = DEFAULT_STAKE_UNLOCK_DURATION
    burn_penalty_on_shortfall: bool = False
    verbose: bool = False

    def __post_init__(self):
        if self.unlock_duration < 1:
            raise ValueError(f"unlock_duration must be at least 1 block, got {self.unlock_duration}")
        if self.stake_unlock_duration < 1:
            raise ValueError(
                f"stake_unlock_duration must be at least 1 block, got {self.stake_unlock_duration}"
            )

    @classmethod
    def from_env(cls) -> LedgerConfig:
        return cls(
            unlock_duration=_env_int("TICKETING_UNLOCK_DURATION", DEFAULT_UNLOCK_DURATION),
            stake_unlock_duration=_env_int(
                "TICKETING_STAKE_UNLOCK_DURATION", DEFAULT_STAKE_UNLOCK_DURATION
            ),
            burn_penalty_on_shortfall=_env_bool("TICKETING_BURN_PENALTY_ON_SHORTFALL", False),
            verbose=_env_bool("TICKETING_VERBOSE", False),
        )


def configure_logging(level: Optional[str] = None) -> None:
    """Replace loguru's default sink with one stderr sink at `level`."""
    logger.remove()
    logger.add(sys.stderr, level=(level or LOG_LEVEL).upper())
