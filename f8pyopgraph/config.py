from __future__ import annotations

import os
from dataclasses import dataclass


def _env_bool(key: str, default: bool) -> bool:
    raw = os.getenv(key)
    if raw is None or not raw.strip():
        return default
    s = raw.strip().lower()
    if s in ("1", "true", "yes", "on"):
        return True
    if s in ("0", "false", "no", "off"):
        return False
    raise ValueError(f"{key} must be a boolean (got {raw!r})")


def _env_int(key: str, default: int) -> int:
    raw = os.getenv(key)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw.strip())
    except ValueError:
        raise ValueError(f"{key} must be an integer (got {raw!r})") from None
    if value <= 0:
        raise ValueError(f"{key} must be > 0 (got {value})")
    return value


def _env_resolution(key: str, default: tuple[int, int]) -> tuple[int, int]:
    raw = os.getenv(key)
    if raw is None or not raw.strip():
        return default
    parts = raw.strip().lower().split("x")
    try:
        width, height = (int(p) for p in parts)
    except ValueError:
        raise ValueError(f'{key} must look like "WxH" (got {raw!r})') from None
    if width <= 0 or height <= 0:
        raise ValueError(f"{key} must be positive (got {raw!r})")
    return width, height


@dataclass(frozen=True)
class EngineConfig:
    # Compositing mechanism limit for render layers.
    max_render_layers: int = 32
    # Reject cycle-closing connects up front instead of failing the tick.
    reject_cycles: bool = True
    default_resolution: tuple[int, int] = (512, 512)
    strict_names: bool = True

    def __post_init__(self) -> None:
        if int(self.max_render_layers) <= 0:
            raise ValueError("max_render_layers must be > 0")
        w, h = self.default_resolution
        if int(w) <= 0 or int(h) <= 0:
            raise ValueError("default_resolution must be positive")

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """
        Build a config from `F8_OPGRAPH_*` environment variables.

        Unset variables keep the dataclass defaults.
        """
        base = cls()
        return cls(
            max_render_layers=_env_int("F8_OPGRAPH_MAX_LAYERS", base.max_render_layers),
            reject_cycles=_env_bool("F8_OPGRAPH_REJECT_CYCLES", base.reject_cycles),
            default_resolution=_env_resolution("F8_OPGRAPH_RESOLUTION", base.default_resolution),
            strict_names=_env_bool("F8_OPGRAPH_STRICT_NAMES", base.strict_names),
        )
