import logging
from typing import Callable, Dict, List, Any

log = logging.getLogger(__name__)

# Wildcard subscribers receive (event, *args, **kwargs).
ANY = "*"


class EventBus:
    """
    Pub/sub bus the session publishes state changes on ("ammo_changed",
    "player_hit", ...). Presentation layers subscribe; a failing subscriber is
    logged and does not stop the others.
    """
    def __init__(self) -> None:
        self._subs: Dict[str, List[Callable[..., None]]] = {}

    def subscribe(self, event: str, cb: Callable[..., None]) -> Callable[[], None]:
        self._subs.setdefault(event, []).append(cb)

        def _unsubscribe() -> None:
            self.unsubscribe(event, cb)
        return _unsubscribe

    def unsubscribe(self, event: str, cb: Callable[..., None]) -> None:
        subs = self._subs.get(event, [])
        if cb in subs:
            subs.remove(cb)

    def emit(self, event: str, *args: Any, **kwargs: Any) -> None:
        for cb in list(self._subs.get(event, [])):
            self._call(event, cb, args, kwargs)
        for cb in list(self._subs.get(ANY, [])):
            self._call(event, cb, (event,) + args, kwargs)

    @staticmethod
    def _call(event: str, cb: Callable[..., None], args: tuple, kwargs: Dict[str, Any]) -> None:
        try:
            cb(*args, **kwargs)
        except Exception:
            log.exception("subscriber for %r failed", event)
