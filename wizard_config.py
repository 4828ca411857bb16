from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from derivation_engine import FinancingTerms


@dataclass(frozen=True)
class Config:
    submit_url: Optional[str]
    submit_timeout_s: float
    event_log: Optional[str]
    log_level: str
    financing_months: int
    financing_rate: float
    currency: str

    @property
    def financing(self) -> FinancingTerms:
        return FinancingTerms(months=self.financing_months, annual_rate=self.financing_rate)


def _as_optional_str(value: object) -> Optional[str]:
    if not isinstance(value, str):
        return None
    v = value.strip()
    return v if v else None


def _env_float(key: str, default: float) -> float:
    raw = _as_optional_str(os.environ.get(key))
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ValueError(f"Invalid {key}: expected a number, got {raw!r}") from e


def _env_int(key: str, default: int) -> int:
    raw = _as_optional_str(os.environ.get(key))
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ValueError(f"Invalid {key}: expected a whole number, got {raw!r}") from e


def load_config_from_env() -> Config:
    """
    Loads config from environment variables (after dotenv is loaded).
    """
    timeout_s = _env_float("WIZARD_SUBMIT_TIMEOUT_S", 3.0)
    if timeout_s <= 0:
        raise ValueError(f"Invalid WIZARD_SUBMIT_TIMEOUT_S: must be positive (got {timeout_s})")
    months = _env_int("WIZARD_FINANCING_MONTHS", 24)
    if months <= 0:
        raise ValueError(f"Invalid WIZARD_FINANCING_MONTHS: must be positive (got {months})")
    rate = _env_float("WIZARD_FINANCING_RATE", 0.10)
    if rate < 0:
        raise ValueError(f"Invalid WIZARD_FINANCING_RATE: must not be negative (got {rate})")

    return Config(
        submit_url=_as_optional_str(os.environ.get("WIZARD_SUBMIT_URL")),
        submit_timeout_s=timeout_s,
        event_log=_as_optional_str(os.environ.get("WIZARD_EVENT_LOG")),
        log_level=(_as_optional_str(os.environ.get("WIZARD_LOG_LEVEL")) or "INFO").upper(),
        financing_months=months,
        financing_rate=rate,
        currency=_as_optional_str(os.environ.get("WIZARD_CURRENCY")) or "₹",
    )


def load_config(dotenv_path: Optional[Path] = None) -> Config:
    # python-dotenv's auto discovery can fail without stack frames (`python -c`); be explicit.
    load_dotenv(dotenv_path=dotenv_path or Path.cwd() / ".env")
    return load_config_from_env()
