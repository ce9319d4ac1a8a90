"""Ammo, lives, reload and respawn for the local player."""
from __future__ import annotations

import logging
import math
import time
from typing import Callable, Optional

from game import constants as C
from game.event_bus import EventBus
from game.messages import (
    Envelope,
    KillMessage,
    RecoverMessage,
    ReloadMessage,
    ShootMessage,
    StatsMessage,
)
from game.models import LocationSample, PlayerCombatState, RewardGate, ShotIntent
from game.timers import Scheduler, Timer

log = logging.getLogger(__name__)

SendFn = Callable[[Envelope], None]


class CombatStateMachine:
    """
    Local shots are applied optimistically and sent without waiting; the
    authority answers with ``stats`` snapshots that overwrite the counters.

    Calls that make no sense in the current state (shooting while dead,
    reloading twice) are ignored rather than raised.
    """

    def __init__(
        self,
        player_id: str,
        send: SendFn,
        scheduler: Scheduler,
        events: Optional[EventBus] = None,
        max_ammo: int = C.MAX_AMMO,
        max_lives: int = C.MAX_LIVES,
        reload_time: float = C.RELOAD_TIME_S,
        respawn_time: float = C.RESPAWN_TIME_S,
        now_fn: Callable[[], float] = time.time,
    ) -> None:
        self.player_id = player_id
        self._send = send
        self.scheduler = scheduler
        self.events = events or EventBus()
        self.reload_time = reload_time
        self.respawn_time = respawn_time
        self._now = now_fn
        self.state = PlayerCombatState(ammo=max_ammo, max_ammo=max_ammo,
                                       lives=max_lives, max_lives=max_lives)
        self._reload_timer: Optional[Timer] = None
        self._respawn_timer: Optional[Timer] = None

    # ---------- Shooting ----------
    def can_shoot(self) -> bool:
        s = self.state
        return s.is_alive and not s.is_reloading and s.reward_gate is None and s.ammo > 0

    def shoot(self, location: LocationSample, heading: float) -> Optional[ShotIntent]:
        s = self.state
        if not s.is_alive:
            log.debug("shot ignored: dead")
            return None
        if s.is_reloading:
            log.debug("shot ignored: reloading")
            return None
        if s.reward_gate is not None or s.ammo <= 0:
            log.debug("shot ignored: gated on %s", s.reward_gate)
            return None

        s.ammo -= 1
        self.events.emit("ammo_changed", s.ammo, s.max_ammo)
        if s.ammo == 0:
            # The last round is spent locally; recovery goes through the gate.
            self._set_gate(RewardGate.AMMO)
            return None

        shot = ShotIntent(shooter_id=self.player_id, location=location,
                          heading=heading, timestamp=self._now())
        self._send(ShootMessage(player_id=self.player_id, location=location, heading=heading))
        self.events.emit("shot_fired", shot)
        return shot

    # ---------- Reload ----------
    def reload(self) -> None:
        s = self.state
        if s.is_reloading:
            return
        s.is_reloading = True
        self.events.emit("reload_started", self.reload_time)
        self._reload_timer = self.scheduler.call_later(self.reload_time, self._send_reload_request)

    def _send_reload_request(self) -> None:
        self._reload_timer = None
        self._send(ReloadMessage(player_id=self.player_id))

    # ---------- Damage ----------
    def apply_hit(self, damage: float, shooter_id: Optional[str] = None) -> None:
        s = self.state
        if not s.is_alive:
            return
        if not math.isfinite(damage):
            log.debug("hit ignored: damage %r", damage)
            return
        lost = max(int(round(damage)), 1)
        s.lives = max(0, s.lives - lost)
        self.events.emit("player_hit", lost, shooter_id)
        self.events.emit("lives_changed", s.lives, s.max_lives)
        if s.lives > 0:
            return

        s.is_alive = False
        log.info("killed by %s", shooter_id or "unknown")
        if shooter_id:
            self._send(KillMessage(player_id=self.player_id, sender_id=shooter_id,
                                   hit_player_id=self.player_id))
        self.events.emit("player_died", shooter_id)
        self._set_gate(RewardGate.LIVES)

    # ---------- Authoritative updates ----------
    def apply_stats(self, stats: StatsMessage) -> None:
        """Full overwrite from the authority; applying the same snapshot twice changes nothing."""
        s = self.state
        # A snapshot that arrives before our reload request went out is not its reply.
        if self._reload_timer is None and s.is_reloading:
            s.is_reloading = False
            self.events.emit("reload_finished")

        # Alive/gate flags are left alone: the authority may not have seen the
        # shot or hit that set them yet.
        if stats.ammo is not None:
            s.ammo = min(max(0, stats.ammo), s.max_ammo)
            self.events.emit("ammo_changed", s.ammo, s.max_ammo)

        if stats.lives is not None:
            s.lives = min(max(0, stats.lives), s.max_lives)
            self.events.emit("lives_changed", s.lives, s.max_lives)

        if stats.hits is not None or stats.kills is not None:
            if stats.hits is not None:
                s.hits = stats.hits
            if stats.kills is not None:
                s.kills = stats.kills
            self.events.emit("score_changed", s.hits, s.kills)

    def record_hit_confirmed(self, damage: float) -> None:
        self.state.hits += damage
        self.events.emit("score_changed", self.state.hits, self.state.kills)

    def record_kill(self) -> None:
        self.state.kills += 1
        self.events.emit("score_changed", self.state.hits, self.state.kills)

    # ---------- Reward gate ----------
    def handle_ad_reward(self) -> None:
        """The player watched the reward; grant recovery right away."""
        gate = self.state.reward_gate
        if gate is RewardGate.AMMO:
            self._set_gate(None)
            # A reload started while gated is superseded by this request.
            if self._reload_timer is not None:
                self._reload_timer.cancel()
                self._reload_timer = None
            # Instant grant: skip the reload window, stay blocked until stats arrive.
            self.state.is_reloading = True
            self.events.emit("reload_started", 0.0)
            self._send(ReloadMessage(player_id=self.player_id))
        elif gate is RewardGate.LIVES:
            self._set_gate(None)
            self._restore_lives()

    def close_ad_modal(self) -> None:
        """The player declined the reward; recover the slow way."""
        gate = self.state.reward_gate
        if gate is RewardGate.AMMO:
            self._set_gate(None)
            self.reload()
        elif gate is RewardGate.LIVES:
            self._set_gate(None)
            if self._respawn_timer is None:
                self.events.emit("respawn_scheduled", self.respawn_time)
                self._respawn_timer = self.scheduler.call_later(self.respawn_time, self._respawn)

    def _respawn(self) -> None:
        self._respawn_timer = None
        self._restore_lives()

    def _restore_lives(self) -> None:
        s = self.state
        s.lives = s.max_lives
        self._revive()
        self.events.emit("lives_changed", s.lives, s.max_lives)
        self._send(RecoverMessage(player_id=self.player_id))

    def _revive(self) -> None:
        s = self.state
        if self._respawn_timer is not None:
            self._respawn_timer.cancel()
            self._respawn_timer = None
        if s.reward_gate is RewardGate.LIVES:
            self._set_gate(None)
        if not s.is_alive:
            s.is_alive = True
            self.events.emit("player_respawned")

    def _set_gate(self, gate: Optional[RewardGate]) -> None:
        if self.state.reward_gate is gate:
            return
        self.state.reward_gate = gate
        self.events.emit("reward_gate", gate)

    def close(self) -> None:
        """Cancel pending reload/respawn callbacks."""
        for timer in (self._reload_timer, self._respawn_timer):
            if timer is not None:
                timer.cancel()
        self._reload_timer = self._respawn_timer = None
