"""Geometric plausibility check for shots fired at this client."""
from __future__ import annotations

import logging
import math
from dataclasses import replace
from typing import Any, Optional, Protocol

from game import constants as C
from game.geometry import angular_deviation, bearing, damage_falloff, deg_to_rad, distance
from game.models import MISS, HitOutcome, LocationSample, TargetKind

log = logging.getLogger(__name__)


class PresenceChecker(Protocol):
    """Secondary signal: is someone actually at the crosshair?"""

    async def is_present(self, target: LocationSample, frame: Any = None) -> bool:
        ...


class AlwaysPresent:
    async def is_present(self, target: LocationSample, frame: Any = None) -> bool:
        return True


class HitValidator:
    def __init__(
        self,
        presence_checker: Optional[PresenceChecker] = None,
        max_range: float = C.MAX_RANGE_M,
        max_angle_error: float = C.MAX_ANGLE_ERROR_DEG,
        base_damage: float = C.BASE_DAMAGE,
    ) -> None:
        self.presence_checker: PresenceChecker = presence_checker or AlwaysPresent()
        self.max_range = max_range
        self.max_angle_error = max_angle_error
        self.base_damage = base_damage

    def check_geometry(
        self,
        shooter: LocationSample,
        heading: float,
        target: Optional[LocationSample],
    ) -> HitOutcome:
        if target is None:
            return MISS

        dist = distance(shooter, target)
        # Out of range: skip the bearing math entirely.
        if dist > self.max_range:
            return HitOutcome(is_valid=False, damage=0.0, distance_m=dist, deviation_m=0.0)

        angle = angular_deviation(heading, bearing(shooter, target))
        deviation_m = dist * math.tan(deg_to_rad(angle))
        is_valid = angle <= self.max_angle_error
        damage = damage_falloff(dist, self.max_range, self.base_damage) if is_valid else 0.0
        return HitOutcome(is_valid=is_valid, damage=damage, distance_m=dist, deviation_m=deviation_m)

    async def validate(
        self,
        shooter: LocationSample,
        heading: float,
        target: Optional[LocationSample],
        kind: TargetKind = TargetKind.PLAYER,
        frame: Any = None,
    ) -> HitOutcome:
        """
        Geometry first; for player targets a passing shot is then confirmed
        by the presence checker, which may be slow.
        """
        outcome = self.check_geometry(shooter, heading, target)
        if not outcome.is_valid or kind is not TargetKind.PLAYER:
            return outcome

        present = await self.presence_checker.is_present(target, frame)
        if not present:
            log.debug("shot geometrically valid but no one present at %s", target)
            return replace(outcome, is_valid=False, damage=0.0)
        return outcome
