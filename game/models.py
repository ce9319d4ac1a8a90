"""Core data shared by the session components."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple


@dataclass(frozen=True)
class LocationSample:
    """GPS fix as reported by the device."""
    latitude: float
    longitude: float
    altitude: float = 0.0
    accuracy: float = 0.0  # metres

    def to_wire(self) -> Dict[str, float]:
        return {
            "latitude": self.latitude,
            "longitude": self.longitude,
            "altitude": self.altitude,
            "accuracy": self.accuracy,
        }

    @classmethod
    def from_wire(cls, data: Dict[str, Any]) -> "LocationSample":
        return cls(
            latitude=float(data["latitude"]),
            longitude=float(data["longitude"]),
            altitude=float(data.get("altitude") or 0.0),
            accuracy=float(data.get("accuracy") or 0.0),
        )


@dataclass(frozen=True)
class ShotIntent:
    """A shot fired by the local player; validated or sent, never mutated."""
    shooter_id: str
    location: LocationSample
    heading: float  # degrees
    timestamp: float


@dataclass(frozen=True)
class HitOutcome:
    is_valid: bool
    damage: float
    distance_m: float
    deviation_m: float


MISS = HitOutcome(is_valid=False, damage=0.0, distance_m=0.0, deviation_m=0.0)


class TargetKind(str, Enum):
    PLAYER = "player"
    DRONE = "drone"
    GEO_OBJECT = "geoObject"


class RewardGate(str, Enum):
    """Progress blocked until an external reward is granted or declined."""
    AMMO = "ammo"
    LIVES = "lives"


@dataclass
class PlayerCombatState:
    """Combat state of the local player."""
    ammo: int = 30
    max_ammo: int = 30
    lives: int = 10
    max_lives: int = 10
    is_alive: bool = True
    is_reloading: bool = False
    reward_gate: Optional[RewardGate] = None
    # --- Score ---
    hits: float = 0
    kills: int = 0


@dataclass
class DroneEntity:
    drone_id: str
    position: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    reward: Optional[int] = None


@dataclass
class GeoObjectEntity:
    """Object anchored to a real-world coordinate."""
    id: str
    coordinate: LocationSample
    kind: str = ""
    reward: Optional[int] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class RemotePlayer:
    player_id: str
    location: Optional[LocationSample] = None
    heading: float = 0.0
