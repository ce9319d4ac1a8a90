"""
Wire envelopes exchanged with the game authority.

Every frame is a JSON object ``{"type", "playerId", "senderId"?, "data"?,
"pushToken"?}``. Each ``type`` maps to one dataclass below carrying only the
fields that type uses; ``decode_envelope`` picks the variant from the type
tag and ``encode_envelope`` produces the frame text.

Unknown type tags decode to ``UnknownMessage`` so newer servers can add
messages without breaking older clients. ``ConnectedEvent`` is synthesized
locally when the channel opens and is never put on the wire.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Dict, Optional, Type

from common.net import Frame, dump_frame, load_frame
from game.models import DroneEntity, GeoObjectEntity, LocationSample


class MessageError(ValueError):
    """A frame that cannot be decoded, or an envelope that cannot be encoded."""


class MessageType(str, Enum):
    JOIN = "join"
    STATS = "stats"
    SHOOT = "shoot"
    SHOOT_CONFIRMED = "shootConfirmed"
    HIT = "hit"
    HIT_CONFIRMED = "hitConfirmed"
    KILL = "kill"
    RELOAD = "reload"
    RECOVER = "recover"
    LEAVE = "leave"
    ANNOUNCED = "announced"
    NEW_DRONE = "newDrone"
    REMOVE_DRONES = "removeDrones"
    SHOOT_DRONE = "shootDrone"
    DRONE_SHOOT_CONFIRMED = "droneShootConfirmed"
    DRONE_SHOOT_REJECTED = "droneShootRejected"
    NEW_GEO_OBJECT = "newGeoObject"
    GEO_OBJECT_HIT = "geoObjectHit"
    GEO_OBJECT_SHOOT_CONFIRMED = "geoObjectShootConfirmed"
    GEO_OBJECT_SHOOT_REJECTED = "geoObjectShootRejected"
    UPDATE_PUSH_TOKEN = "updatePushToken"
    # local only
    CONNECTED = "websocketConnected"


_VARIANTS: Dict[str, Type["Envelope"]] = {}


def _variant(cls):
    _VARIANTS[cls.type.value] = cls
    return cls


def _location_or_none(raw: Any) -> Optional[LocationSample]:
    if raw is None:
        return None
    if not isinstance(raw, dict):
        raise TypeError(f"location must be an object, got {type(raw).__name__}")
    return LocationSample.from_wire(raw)


def _wire_location(loc: Optional[LocationSample]) -> Optional[Dict[str, float]]:
    return loc.to_wire() if loc is not None else None


def _optional_str(raw: Any) -> Optional[str]:
    return None if raw is None else str(raw)


def _float(data: Dict[str, Any], key: str, default: float = 0.0) -> float:
    v = data.get(key)
    if v is None:
        return default
    f = float(v)
    if not math.isfinite(f):
        raise ValueError(f"{key} must be finite, got {v!r}")
    return f


def _object(raw: Any, name: str) -> Dict[str, Any]:
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise TypeError(f"{name} must be an object, got {type(raw).__name__}")
    return raw


@dataclass
class Envelope:
    """Fields shared by every message."""
    player_id: str = ""
    sender_id: Optional[str] = None

    type: ClassVar[MessageType]
    wire: ClassVar[bool] = True

    def _data(self) -> Optional[Dict[str, Any]]:
        return None

    @classmethod
    def _parse(cls, data: Dict[str, Any], payload: Dict[str, Any]) -> Dict[str, Any]:
        return {}

    def to_wire(self) -> Dict[str, Any]:
        if not self.wire:
            raise MessageError(f"{type(self).__name__} is local and cannot be sent")
        out: Dict[str, Any] = {"type": self.type.value, "playerId": self.player_id}
        if self.sender_id is not None:
            out["senderId"] = self.sender_id
        data = self._data()
        if data is not None:
            out["data"] = data
        return out


# ---------- Session ----------

@_variant
@dataclass
class JoinMessage(Envelope):
    type: ClassVar[MessageType] = MessageType.JOIN
    location: Optional[LocationSample] = None
    heading: float = 0.0
    push_token: Optional[str] = None

    def _data(self):
        return {
            "location": _wire_location(self.location),
            "playerId": self.player_id,
            "kind": "player",
            "heading": self.heading,
        }

    def to_wire(self):
        out = super().to_wire()
        out["pushToken"] = self.push_token
        return out

    @classmethod
    def _parse(cls, data, payload):
        return {
            "location": _location_or_none(data.get("location")),
            "heading": _float(data, "heading"),
            "push_token": _optional_str(payload.get("pushToken")),
        }


@_variant
@dataclass
class StatsMessage(Envelope):
    """Authoritative snapshot of a player's counters."""
    type: ClassVar[MessageType] = MessageType.STATS
    ammo: Optional[int] = None
    lives: Optional[int] = None
    hits: Optional[float] = None
    kills: Optional[int] = None

    def _data(self):
        out = {}
        for key, value in (("currentAmmo", self.ammo), ("currentLives", self.lives),
                           ("hits", self.hits), ("kills", self.kills)):
            if value is not None:
                out[key] = value
        return out

    @classmethod
    def _parse(cls, data, payload):
        def _int(key):
            v = data.get(key)
            return None if v is None else int(v)
        hits = data.get("hits")
        return {
            "ammo": _int("currentAmmo"),
            "lives": _int("currentLives"),
            "hits": None if hits is None else float(hits),
            "kills": _int("kills"),
        }


@_variant
@dataclass
class LeaveMessage(Envelope):
    type: ClassVar[MessageType] = MessageType.LEAVE


@_variant
@dataclass
class AnnouncedMessage(Envelope):
    """Another player became visible to us."""
    type: ClassVar[MessageType] = MessageType.ANNOUNCED
    location: Optional[LocationSample] = None
    heading: float = 0.0

    def _data(self):
        return {"playerId": self.player_id, "location": _wire_location(self.location),
                "heading": self.heading}

    @classmethod
    def _parse(cls, data, payload):
        return {
            "location": _location_or_none(data.get("location")),
            "heading": _float(data, "heading"),
        }


@_variant
@dataclass
class UpdatePushTokenMessage(Envelope):
    type: ClassVar[MessageType] = MessageType.UPDATE_PUSH_TOKEN
    push_token: Optional[str] = None

    def to_wire(self):
        out = super().to_wire()
        out["pushToken"] = self.push_token
        return out

    @classmethod
    def _parse(cls, data, payload):
        return {"push_token": _optional_str(payload.get("pushToken"))}


# ---------- Player combat ----------

@_variant
@dataclass
class ShootMessage(Envelope):
    type: ClassVar[MessageType] = MessageType.SHOOT
    location: Optional[LocationSample] = None
    heading: float = 0.0
    damage: float = 1.0
    distance: float = 0.0

    def _data(self):
        return {
            "playerId": self.player_id,
            "location": _wire_location(self.location),
            "heading": self.heading,
            "damage": self.damage,
            "distance": self.distance,
        }

    @classmethod
    def _parse(cls, data, payload):
        return {
            "location": _location_or_none(data.get("location")),
            "heading": _float(data, "heading"),
            "damage": _float(data, "damage", 1.0),
            "distance": _float(data, "distance"),
        }


@dataclass
class ShotReport(Envelope):
    """Outcome of validating someone else's shot, as reported by the target."""
    hit_player_id: Optional[str] = None
    damage: float = 0.0
    distance: float = 0.0
    deviation: float = 0.0
    heading: float = 0.0
    location: Optional[LocationSample] = None

    def _data(self):
        return {
            "hitPlayerId": self.hit_player_id,
            "damage": self.damage,
            "distance": self.distance,
            "deviation": self.deviation,
            "heading": self.heading,
            "location": _wire_location(self.location),
            "kind": "shoot",
        }

    @classmethod
    def _parse(cls, data, payload):
        return {
            "hit_player_id": _optional_str(data.get("hitPlayerId")),
            "damage": _float(data, "damage"),
            "distance": _float(data, "distance"),
            "deviation": _float(data, "deviation"),
            "heading": _float(data, "heading"),
            "location": _location_or_none(data.get("location")),
        }


@_variant
@dataclass
class ShootConfirmedMessage(ShotReport):
    type: ClassVar[MessageType] = MessageType.SHOOT_CONFIRMED


@_variant
@dataclass
class HitConfirmedMessage(ShotReport):
    type: ClassVar[MessageType] = MessageType.HIT_CONFIRMED


@_variant
@dataclass
class HitMessage(Envelope):
    type: ClassVar[MessageType] = MessageType.HIT
    hit_player_id: Optional[str] = None
    damage: float = 1.0

    def _data(self):
        return {"shoot": {"hitPlayerId": self.hit_player_id, "damage": self.damage}}

    @classmethod
    def _parse(cls, data, payload):
        shoot = _object(data.get("shoot"), "shoot")
        return {
            "hit_player_id": _optional_str(shoot.get("hitPlayerId")),
            "damage": _float(shoot, "damage", 1.0),
        }


@_variant
@dataclass
class KillMessage(Envelope):
    """player_id is the victim, sender_id the shooter."""
    type: ClassVar[MessageType] = MessageType.KILL
    hit_player_id: Optional[str] = None

    def _data(self):
        return {"hitPlayerId": self.hit_player_id}

    @classmethod
    def _parse(cls, data, payload):
        return {"hit_player_id": _optional_str(data.get("hitPlayerId"))}


@_variant
@dataclass
class ReloadMessage(Envelope):
    type: ClassVar[MessageType] = MessageType.RELOAD


@_variant
@dataclass
class RecoverMessage(Envelope):
    type: ClassVar[MessageType] = MessageType.RECOVER


# ---------- Drones ----------

@_variant
@dataclass
class NewDroneMessage(Envelope):
    type: ClassVar[MessageType] = MessageType.NEW_DRONE
    drone: Optional[DroneEntity] = None

    def _data(self):
        if self.drone is None:
            return {}
        x, y, z = self.drone.position
        out = {"droneId": self.drone.drone_id, "position": {"x": x, "y": y, "z": z}}
        if self.drone.reward is not None:
            out["reward"] = self.drone.reward
        return out

    @classmethod
    def _parse(cls, data, payload):
        pos = _object(data.get("position"), "position")
        reward = data.get("reward")
        drone = DroneEntity(
            drone_id=str(data["droneId"]),
            position=(float(pos.get("x", 0.0)), float(pos.get("y", 0.0)), float(pos.get("z", 0.0))),
            reward=None if reward is None else int(reward),
        )
        return {"drone": drone}


@_variant
@dataclass
class RemoveDronesMessage(Envelope):
    type: ClassVar[MessageType] = MessageType.REMOVE_DRONES


@dataclass
class DroneShotMessage(Envelope):
    drone_id: Optional[str] = None
    reward: Optional[int] = None

    def _data(self):
        out: Dict[str, Any] = {"droneId": self.drone_id}
        if self.reward is not None:
            out["reward"] = self.reward
        return out

    @classmethod
    def _parse(cls, data, payload):
        reward = data.get("reward")
        return {
            "drone_id": _optional_str(data.get("droneId")),
            "reward": None if reward is None else int(reward),
        }


@_variant
@dataclass
class ShootDroneMessage(DroneShotMessage):
    type: ClassVar[MessageType] = MessageType.SHOOT_DRONE


@_variant
@dataclass
class DroneShootConfirmedMessage(DroneShotMessage):
    type: ClassVar[MessageType] = MessageType.DRONE_SHOOT_CONFIRMED


@_variant
@dataclass
class DroneShootRejectedMessage(DroneShotMessage):
    type: ClassVar[MessageType] = MessageType.DRONE_SHOOT_REJECTED


# ---------- Geo objects ----------

@_variant
@dataclass
class NewGeoObjectMessage(Envelope):
    type: ClassVar[MessageType] = MessageType.NEW_GEO_OBJECT
    geo_object: Optional[GeoObjectEntity] = None

    def _data(self):
        obj = self.geo_object
        if obj is None:
            return {}
        out: Dict[str, Any] = {"id": obj.id, "type": obj.kind, "coordinate": obj.coordinate.to_wire()}
        if obj.reward is not None:
            out["reward"] = obj.reward
        if obj.metadata:
            out["metadata"] = obj.metadata
        return out

    @classmethod
    def _parse(cls, data, payload):
        coordinate = _location_or_none(data.get("coordinate"))
        if coordinate is None:
            raise KeyError("coordinate")
        reward = data.get("reward")
        obj = GeoObjectEntity(
            id=str(data["id"]),
            coordinate=coordinate,
            kind=str(data.get("type") or ""),
            reward=None if reward is None else int(reward),
            metadata=dict(_object(data.get("metadata"), "metadata")),
        )
        return {"geo_object": obj}


@dataclass
class GeoObjectShotMessage(Envelope):
    geo_object_id: Optional[str] = None
    reward: Optional[int] = None

    def _data(self):
        obj: Dict[str, Any] = {"id": self.geo_object_id}
        if self.reward is not None:
            obj["reward"] = self.reward
        return {"geoObject": obj}

    @classmethod
    def _parse(cls, data, payload):
        obj = _object(data.get("geoObject"), "geoObject")
        reward = obj.get("reward")
        return {
            "geo_object_id": _optional_str(obj.get("id")),
            "reward": None if reward is None else int(reward),
        }


@_variant
@dataclass
class GeoObjectHitMessage(GeoObjectShotMessage):
    type: ClassVar[MessageType] = MessageType.GEO_OBJECT_HIT


@_variant
@dataclass
class GeoObjectShootConfirmedMessage(GeoObjectShotMessage):
    type: ClassVar[MessageType] = MessageType.GEO_OBJECT_SHOOT_CONFIRMED


@_variant
@dataclass
class GeoObjectShootRejectedMessage(GeoObjectShotMessage):
    type: ClassVar[MessageType] = MessageType.GEO_OBJECT_SHOOT_REJECTED


# ---------- Local / fallback ----------

@dataclass
class ConnectedEvent(Envelope):
    type: ClassVar[MessageType] = MessageType.CONNECTED
    wire: ClassVar[bool] = False


@dataclass
class UnknownMessage(Envelope):
    """A type tag this client does not know about. Kept for logging only."""
    type: ClassVar[Optional[MessageType]] = None
    type_name: str = ""
    payload: Dict[str, Any] = field(default_factory=dict)
    wire: ClassVar[bool] = False


# ---------- Codec ----------

def decode_envelope(frame: Frame) -> Envelope:
    """Decode one text frame. Raises MessageError when the frame is malformed."""
    try:
        payload = load_frame(frame)
    except ValueError as exc:
        raise MessageError(f"frame is not valid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise MessageError(f"frame must be a JSON object, got {type(payload).__name__}")

    type_name = payload.get("type")
    if not isinstance(type_name, str):
        raise MessageError("frame has no string 'type'")
    player_id = payload.get("playerId")
    if not isinstance(player_id, str):
        raise MessageError(f"{type_name} frame has no string 'playerId'")
    sender_id = _optional_str(payload.get("senderId"))

    try:
        data = _object(payload.get("data"), "data")
    except TypeError as exc:
        raise MessageError(f"{type_name} frame: {exc}") from exc

    cls = _VARIANTS.get(type_name)
    if cls is None:
        return UnknownMessage(player_id=player_id, sender_id=sender_id,
                              type_name=type_name, payload=data)
    try:
        fields = cls._parse(data, payload)
    except (KeyError, TypeError, ValueError, OverflowError) as exc:
        raise MessageError(f"malformed {type_name} frame: {exc!r}") from exc
    return cls(player_id=player_id, sender_id=sender_id, **fields)


def encode_envelope(envelope: Envelope) -> str:
    return dump_frame(envelope.to_wire())


def wire_types():
    """Message types that have a wire representation."""
    return frozenset(MessageType(name) for name in _VARIANTS)
