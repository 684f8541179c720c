from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import os


class FailurePolicy(str, Enum):
    """What the driver does with a byte that does not decode."""

    FATAL = "fatal"
    RAW_BYTE = "raw_byte"


DEFAULT_STEP_LIMIT = 100_000


def _env_flag(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    normalized = raw.strip().casefold()
    return normalized not in {"0", "false", "off", ""}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip(), 0)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc


@dataclass(frozen=True)
class DisasmConfig:
    origin: int = 0
    policy: FailurePolicy = FailurePolicy.FATAL
    header: bool = True
    listing: bool = False
    step_limit: int = DEFAULT_STEP_LIMIT


def load_disasm_config() -> DisasmConfig:
    return DisasmConfig(
        origin=_env_int("DIS86_ORIGIN", 0),
        policy=FailurePolicy.RAW_BYTE
        if _env_flag("DIS86_RECOVER", default=False)
        else FailurePolicy.FATAL,
        header=not _env_flag("DIS86_NO_HEADER", default=False),
        listing=_env_flag("DIS86_LISTING", default=False),
        step_limit=_env_int("DIS86_STEP_LIMIT", DEFAULT_STEP_LIMIT),
    )


__all__ = ["DEFAULT_STEP_LIMIT", "DisasmConfig", "FailurePolicy", "load_disasm_config"]
