"""One player's session: wires the connection, combat, entities and router together."""
from __future__ import annotations

import logging
from typing import Optional

from engine.config import Tuning
from game.combat import CombatStateMachine
from game.connection import ConnectionManager, Opener
from game.entities import EntityLifecycleManager
from game.event_bus import EventBus
from game.hit_validation import HitValidator, PresenceChecker
from game.location import LocationTracker
from game.models import ShotIntent
from game.router import MessageRouter
from game.timers import Scheduler

log = logging.getLogger(__name__)


class GameSession:
    """
    Owns every component for one player. Nothing here is global: two
    sessions in one process do not share state.
    """

    def __init__(
        self,
        player_id: str,
        tuning: Optional[Tuning] = None,
        *,
        opener: Optional[Opener] = None,
        scheduler: Optional[Scheduler] = None,
        presence_checker: Optional[PresenceChecker] = None,
        push_token: Optional[str] = None,
    ) -> None:
        self.player_id = player_id
        self.tuning = tuning or Tuning()
        t = self.tuning

        self.events = EventBus()
        self.scheduler = scheduler or Scheduler()
        self.location = LocationTracker()
        self.connection = ConnectionManager(
            t.url,
            opener=opener,
            scheduler=self.scheduler,
            reconnect_delay=t.reconnect_delay,
            max_reconnect_attempts=t.max_reconnect_attempts,
            keepalive_interval=t.keepalive_interval,
        )
        self.validator = HitValidator(
            presence_checker,
            max_range=t.max_range_m,
            max_angle_error=t.max_angle_error_deg,
            base_damage=t.base_damage,
        )
        self.combat = CombatStateMachine(
            player_id,
            self.connection.send,
            self.scheduler,
            self.events,
            max_ammo=t.max_ammo,
            max_lives=t.max_lives,
            reload_time=t.reload_time,
            respawn_time=t.respawn_time,
        )
        self.entities = EntityLifecycleManager(self.events, drone_capacity=t.drone_capacity)
        self.router = MessageRouter(
            player_id,
            self.connection.send,
            self.combat,
            self.entities,
            self.validator,
            self.location,
            self.events,
            push_token=push_token,
        )
        self._unsubscribe = [
            self.connection.add_listener(self.router.handle),
            self.connection.add_state_listener(self.router.on_connection_state),
        ]

    def start(self) -> None:
        """Open the channel. Must be called from inside the running loop."""
        self.connection.connect()

    def shoot(self) -> Optional[ShotIntent]:
        here = self.location.location
        if here is None:
            log.debug("shot ignored: no location fix yet")
            return None
        heading = self.location.heading
        return self.combat.shoot(here, heading if heading is not None else 0.0)

    def reload(self) -> None:
        self.combat.reload()

    def handle_ad_reward(self) -> None:
        self.combat.handle_ad_reward()

    def close_ad_modal(self) -> None:
        self.combat.close_ad_modal()

    async def close(self) -> None:
        for unsubscribe in self._unsubscribe:
            unsubscribe()
        self._unsubscribe = []
        self.combat.close()
        await self.router.close()
        await self.connection.disconnect()
        self.scheduler.cancel_all()
