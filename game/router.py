"""Dispatch of inbound envelopes to the combat machine and entity manager."""
from __future__ import annotations

import asyncio
import logging
from typing import Callable, Dict, Optional, Set

from game import constants as C
from game.combat import CombatStateMachine
from game.connection import ConnectionState
from game.entities import EntityLifecycleManager
from game.event_bus import EventBus
from game.hit_validation import HitValidator
from game.location import LocationTracker
from game.messages import (
    AnnouncedMessage,
    ConnectedEvent,
    DroneShootConfirmedMessage,
    DroneShootRejectedMessage,
    Envelope,
    GeoObjectHitMessage,
    GeoObjectShootConfirmedMessage,
    GeoObjectShootRejectedMessage,
    HitConfirmedMessage,
    HitMessage,
    JoinMessage,
    KillMessage,
    LeaveMessage,
    MessageType,
    NewDroneMessage,
    NewGeoObjectMessage,
    RemoveDronesMessage,
    ShootConfirmedMessage,
    ShootDroneMessage,
    ShootMessage,
    StatsMessage,
    UpdatePushTokenMessage,
)
from game.models import TargetKind

log = logging.getLogger(__name__)

SendFn = Callable[[Envelope], None]

# Sent by this client, never handled when received.
OUTBOUND_ONLY = frozenset({
    MessageType.JOIN,
    MessageType.RELOAD,
    MessageType.RECOVER,
    MessageType.SHOOT_DRONE,
    MessageType.UPDATE_PUSH_TOKEN,
})


class MessageRouter:
    def __init__(
        self,
        player_id: str,
        send: SendFn,
        combat: CombatStateMachine,
        entities: EntityLifecycleManager,
        validator: HitValidator,
        location: LocationTracker,
        events: Optional[EventBus] = None,
        push_token: Optional[str] = None,
    ) -> None:
        self.player_id = player_id
        self._send = send
        self.combat = combat
        self.entities = entities
        self.validator = validator
        self.location = location
        self.events = events or EventBus()
        self.push_token = push_token
        self.joined = False
        self._tasks: Set[asyncio.Task] = set()

        self._handlers: Dict[MessageType, Callable] = {
            MessageType.CONNECTED: self._on_connected,
            MessageType.STATS: self._on_stats,
            MessageType.SHOOT: self._on_shoot,
            MessageType.SHOOT_CONFIRMED: self._on_shoot_confirmed,
            MessageType.HIT: self._on_hit,
            MessageType.HIT_CONFIRMED: self._on_hit_confirmed,
            MessageType.KILL: self._on_kill,
            MessageType.LEAVE: self._on_leave,
            MessageType.ANNOUNCED: self._on_announced,
            MessageType.NEW_DRONE: self._on_new_drone,
            MessageType.REMOVE_DRONES: self._on_remove_drones,
            MessageType.DRONE_SHOOT_CONFIRMED: self._on_drone_shoot_confirmed,
            MessageType.DRONE_SHOOT_REJECTED: self._on_drone_shoot_rejected,
            MessageType.NEW_GEO_OBJECT: self._on_new_geo_object,
            MessageType.GEO_OBJECT_HIT: self._on_geo_object_hit,
            MessageType.GEO_OBJECT_SHOOT_CONFIRMED: self._on_geo_object_shoot_confirmed,
            MessageType.GEO_OBJECT_SHOOT_REJECTED: self._on_geo_object_shoot_rejected,
        }

    @property
    def handled_types(self):
        return frozenset(self._handlers)

    # ---------- Entry points ----------
    def handle(self, envelope: Envelope) -> None:
        handler = self._handlers.get(envelope.type)
        if handler is None:
            log.debug("ignoring %s from %s", getattr(envelope, "type_name", None) or envelope.type,
                      envelope.player_id)
            return
        handler(envelope)

    def on_connection_state(self, state: ConnectionState) -> None:
        if state is ConnectionState.DISCONNECTED and self.joined:
            # Next open is a new session on the server side.
            self.joined = False
        self.events.emit("connection_state", state)

    # ---------- Outbound ----------
    def update_push_token(self, token: Optional[str]) -> None:
        self.push_token = token
        self._send(UpdatePushTokenMessage(player_id=self.player_id, push_token=token))

    def shoot_drone(self, drone_id: str) -> None:
        self._send(ShootDroneMessage(player_id=self.player_id, drone_id=drone_id))

    def shoot_geo_object(self, geo_object_id: str) -> None:
        obj = self.entities.get_geo_object(geo_object_id)
        self._send(GeoObjectHitMessage(player_id=self.player_id, geo_object_id=geo_object_id,
                                       reward=obj.reward if obj else None))

    # ---------- Session ----------
    def _on_connected(self, msg: ConnectedEvent) -> None:
        if self.joined:
            return
        heading = self.location.heading
        self._send(JoinMessage(
            player_id=self.player_id,
            location=self.location.location,
            heading=heading if heading is not None else 0.0,
            push_token=self.push_token,
        ))
        self.joined = True
        log.info("joined as %s", self.player_id)

    def _on_stats(self, msg: StatsMessage) -> None:
        if msg.player_id == self.player_id:
            self.combat.apply_stats(msg)

    def _on_leave(self, msg: LeaveMessage) -> None:
        if self.entities.remove_player(msg.player_id):
            log.info("player %s left", msg.player_id)

    def _on_announced(self, msg: AnnouncedMessage) -> None:
        if msg.player_id != self.player_id:
            self.entities.upsert_player(msg.player_id, msg.location, msg.heading)

    # ---------- Player combat ----------
    def _on_shoot(self, msg: ShootMessage) -> None:
        if msg.player_id == self.player_id:
            return
        self.entities.upsert_player(msg.player_id, msg.location, msg.heading)
        task = asyncio.get_running_loop().create_task(self._answer_shot(msg))
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    async def _answer_shot(self, msg: ShootMessage) -> None:
        """Validate a shot aimed at us and report the outcome to the authority."""
        here = self.location.location
        if msg.location is None or here is None:
            log.debug("cannot validate shot from %s: location missing", msg.player_id)
            return

        outcome = await self.validator.validate(msg.location, msg.heading, here, TargetKind.PLAYER)
        report = HitConfirmedMessage if outcome.is_valid else ShootConfirmedMessage
        self._send(report(
            player_id=self.player_id,
            sender_id=msg.player_id,
            hit_player_id=self.player_id,
            damage=outcome.damage,
            distance=outcome.distance_m,
            deviation=outcome.deviation_m,
            heading=msg.heading,
            location=msg.location,
        ))
        if outcome.is_valid:
            self.combat.apply_hit(outcome.damage, msg.player_id)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            log.error("shot validation crashed: %r", exc, exc_info=exc)

    def _on_shoot_confirmed(self, msg: ShootConfirmedMessage) -> None:
        if msg.sender_id == self.player_id:
            self.events.emit("shot_missed", msg.player_id, msg.deviation)

    def _on_hit(self, msg: HitMessage) -> None:
        if msg.hit_player_id == self.player_id:
            self.combat.apply_hit(msg.damage, msg.player_id)

    def _on_hit_confirmed(self, msg: HitConfirmedMessage) -> None:
        if msg.sender_id == self.player_id:
            self.combat.record_hit_confirmed(msg.damage)

    def _on_kill(self, msg: KillMessage) -> None:
        if msg.sender_id == self.player_id:
            self.combat.record_kill()

    # ---------- Drones ----------
    def _on_new_drone(self, msg: NewDroneMessage) -> None:
        if msg.player_id == self.player_id and msg.drone is not None:
            self.entities.spawn_drone(msg.drone)

    def _on_remove_drones(self, msg: RemoveDronesMessage) -> None:
        if msg.player_id == self.player_id:
            self.entities.clear_drones()

    def _on_drone_shoot_confirmed(self, msg: DroneShootConfirmedMessage) -> None:
        if msg.drone_id is not None:
            self.entities.remove_drone(msg.drone_id)
        reward = msg.reward if msg.reward is not None else C.DEFAULT_DRONE_REWARD
        self.events.emit("drone_reward", msg.drone_id, reward)

    def _on_drone_shoot_rejected(self, msg: DroneShootRejectedMessage) -> None:
        self.events.emit("drone_shot_rejected", msg.drone_id)

    # ---------- Geo objects ----------
    def _on_new_geo_object(self, msg: NewGeoObjectMessage) -> None:
        if msg.geo_object is not None:
            self.entities.spawn_geo_object(msg.geo_object)

    def _on_geo_object_hit(self, msg: GeoObjectHitMessage) -> None:
        if msg.geo_object_id is not None:
            self.entities.remove_geo_object(msg.geo_object_id)

    def _on_geo_object_shoot_confirmed(self, msg: GeoObjectShootConfirmedMessage) -> None:
        if msg.geo_object_id is not None:
            self.entities.remove_geo_object(msg.geo_object_id)
        self.events.emit("geo_object_shot_confirmed", msg.geo_object_id, msg.reward)

    def _on_geo_object_shoot_rejected(self, msg: GeoObjectShootRejectedMessage) -> None:
        self.events.emit("geo_object_shot_rejected", msg.geo_object_id)

    async def close(self) -> None:
        tasks = list(self._tasks)
        for t in tasks:
            t.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
