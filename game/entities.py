"""Short-lived world entities: drones, geo-anchored objects, other players."""
from __future__ import annotations

import logging
from collections import OrderedDict
from typing import Dict, List, Optional

from game import constants as C
from game.event_bus import EventBus
from game.models import DroneEntity, GeoObjectEntity, LocationSample, RemotePlayer

log = logging.getLogger(__name__)


class EntityLifecycleManager:
    """
    Drones live in a window of the most recent ``drone_capacity`` spawns;
    geo objects stay until a hit is confirmed. Removing an unknown id is a
    no-op.
    """

    def __init__(self, events: Optional[EventBus] = None, drone_capacity: int = C.DRONE_CAPACITY) -> None:
        self.events = events or EventBus()
        self.drone_capacity = drone_capacity
        self._drones: "OrderedDict[str, DroneEntity]" = OrderedDict()
        self._geo_objects: Dict[str, GeoObjectEntity] = {}
        self._players: Dict[str, RemotePlayer] = {}

    # ---------- Drones ----------
    @property
    def drones(self) -> List[DroneEntity]:
        """Oldest first."""
        return list(self._drones.values())

    def spawn_drone(self, drone: DroneEntity) -> None:
        # A re-announced drone moves to the newest slot.
        self._drones.pop(drone.drone_id, None)
        self._drones[drone.drone_id] = drone
        while len(self._drones) > self.drone_capacity:
            evicted, _ = self._drones.popitem(last=False)
            log.debug("drone %s evicted", evicted)
        self.events.emit("drones_changed", self.drones)

    def remove_drone(self, drone_id: str) -> bool:
        if self._drones.pop(drone_id, None) is None:
            return False
        self.events.emit("drones_changed", self.drones)
        return True

    def clear_drones(self) -> None:
        if not self._drones:
            return
        self._drones.clear()
        self.events.emit("drones_changed", [])

    # ---------- Geo objects ----------
    @property
    def geo_objects(self) -> List[GeoObjectEntity]:
        return list(self._geo_objects.values())

    def get_geo_object(self, geo_object_id: str) -> Optional[GeoObjectEntity]:
        return self._geo_objects.get(geo_object_id)

    def spawn_geo_object(self, obj: GeoObjectEntity) -> None:
        self._geo_objects[obj.id] = obj
        self.events.emit("geo_objects_changed", self.geo_objects)

    def remove_geo_object(self, geo_object_id: str) -> bool:
        if self._geo_objects.pop(geo_object_id, None) is None:
            return False
        self.events.emit("geo_objects_changed", self.geo_objects)
        return True

    # ---------- Other players ----------
    @property
    def players(self) -> Dict[str, RemotePlayer]:
        return dict(self._players)

    def upsert_player(self, player_id: str, location: Optional[LocationSample] = None,
                      heading: Optional[float] = None) -> RemotePlayer:
        player = self._players.get(player_id)
        if player is None:
            player = self._players[player_id] = RemotePlayer(player_id=player_id)
        if location is not None:
            player.location = location
        if heading is not None:
            player.heading = heading
        self.events.emit("players_changed", self.players)
        return player

    def remove_player(self, player_id: str) -> bool:
        if self._players.pop(player_id, None) is None:
            return False
        self.events.emit("players_changed", self.players)
        return True
