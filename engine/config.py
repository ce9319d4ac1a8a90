"""Loader for the JSON session configuration."""
from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Union

from game import constants as C

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent.parent / "configs" / "defaults.json"
_CONFIG_DATA: Dict[str, Any] = {}


class ConfigError(ValueError):
    """The configuration file exists but cannot be used."""


def load(path: Union[str, Path, None] = None) -> Dict[str, Any]:
    """Read a config file. A missing file gives an empty config."""
    cfg_path = Path(path) if path is not None else DEFAULT_CONFIG_PATH
    try:
        with cfg_path.open("r", encoding="utf-8") as handle:
            data = json.load(handle)
    except FileNotFoundError:
        return {}
    except json.JSONDecodeError as exc:
        raise ConfigError(f"{cfg_path}: invalid JSON ({exc})") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"{cfg_path}: top level must be an object")
    return data


def _ensure_loaded() -> None:
    global _CONFIG_DATA
    if not _CONFIG_DATA:
        _CONFIG_DATA = load()


def get(path: str, default: Any = None, cfg: Optional[Dict[str, Any]] = None) -> Any:
    """Return a config value using dotted paths, or default when missing."""
    if cfg is None:
        _ensure_loaded()
        cfg = _CONFIG_DATA
    if not path:
        return cfg

    current: Any = cfg
    for segment in path.split('.'):
        if isinstance(current, dict) and segment in current:
            current = current[segment]
        else:
            return default
    return current


@dataclass(frozen=True)
class Tuning:
    """Gameplay and network constants for one session. Times in seconds."""
    url: str = C.DEFAULT_WS_URL
    max_range_m: float = C.MAX_RANGE_M
    max_angle_error_deg: float = C.MAX_ANGLE_ERROR_DEG
    base_damage: float = C.BASE_DAMAGE
    max_ammo: int = C.MAX_AMMO
    max_lives: int = C.MAX_LIVES
    reload_time: float = C.RELOAD_TIME_S
    respawn_time: float = C.RESPAWN_TIME_S
    drone_capacity: int = C.DRONE_CAPACITY
    reconnect_delay: float = C.RECONNECT_DELAY_S
    max_reconnect_attempts: int = C.MAX_RECONNECT_ATTEMPTS
    keepalive_interval: float = C.KEEPALIVE_INTERVAL_S

    @classmethod
    def from_config(cls, cfg: Dict[str, Any]) -> "Tuning":
        def ms(path: str, default_s: float) -> float:
            return float(get(path, default_s * 1000.0, cfg)) / 1000.0

        try:
            return cls(
                url=str(get("server.url", C.DEFAULT_WS_URL, cfg)),
                max_range_m=float(get("hit_validation.max_range_m", C.MAX_RANGE_M, cfg)),
                max_angle_error_deg=float(get("hit_validation.max_angle_error_deg", C.MAX_ANGLE_ERROR_DEG, cfg)),
                base_damage=float(get("hit_validation.base_damage", C.BASE_DAMAGE, cfg)),
                max_ammo=int(get("combat.max_ammo", C.MAX_AMMO, cfg)),
                max_lives=int(get("combat.max_lives", C.MAX_LIVES, cfg)),
                reload_time=ms("combat.reload_time_ms", C.RELOAD_TIME_S),
                respawn_time=ms("combat.respawn_time_ms", C.RESPAWN_TIME_S),
                drone_capacity=int(get("entities.drone_capacity", C.DRONE_CAPACITY, cfg)),
                reconnect_delay=ms("network.reconnect_delay_ms", C.RECONNECT_DELAY_S),
                max_reconnect_attempts=int(get("network.max_reconnect_attempts", C.MAX_RECONNECT_ATTEMPTS, cfg)),
                keepalive_interval=ms("network.keepalive_interval_ms", C.KEEPALIVE_INTERVAL_S),
            )
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"bad config value: {exc}") from exc
