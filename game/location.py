"""Latest position and compass heading of the local device."""
from __future__ import annotations

from typing import Callable, List, Optional

from game.geometry import wrap_degrees
from game.models import LocationSample

LocationCallback = Callable[[LocationSample], None]
HeadingCallback = Callable[[float], None]


class LocationTracker:
    """
    Fed by the platform's location/orientation sources. Subscribers get the
    current value right away, then every update.
    """

    def __init__(self) -> None:
        self._location: Optional[LocationSample] = None
        self._heading: Optional[float] = None
        self._location_subs: List[LocationCallback] = []
        self._heading_subs: List[HeadingCallback] = []

    @property
    def location(self) -> Optional[LocationSample]:
        return self._location

    @property
    def heading(self) -> Optional[float]:
        return self._heading

    def update_location(self, sample: LocationSample) -> None:
        self._location = sample
        for cb in list(self._location_subs):
            cb(sample)

    def update_heading(self, degrees: float) -> None:
        self._heading = wrap_degrees(degrees)
        for cb in list(self._heading_subs):
            cb(self._heading)

    def subscribe_location(self, cb: LocationCallback) -> Callable[[], None]:
        self._location_subs.append(cb)
        if self._location is not None:
            cb(self._location)
        return lambda: self._location_subs.remove(cb) if cb in self._location_subs else None

    def subscribe_heading(self, cb: HeadingCallback) -> Callable[[], None]:
        self._heading_subs.append(cb)
        if self._heading is not None:
            cb(self._heading)
        return lambda: self._heading_subs.remove(cb) if cb in self._heading_subs else None
