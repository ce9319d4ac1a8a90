# common/net.py
import json
from typing import Any, Dict, Union

# Text-frame JSON protocol helpers. One JSON object per WebSocket frame; the
# keepalive probe and its reply are bare text frames.

PING = "ping"
PONG = "pong"

Frame = Union[str, bytes, bytearray]


def dump_frame(obj: Dict[str, Any]) -> str:
    return json.dumps(obj, separators=(",", ":"))


def load_frame(frame: Frame) -> Any:
    """Parse a text or binary frame as JSON. Raises ValueError when it is not."""
    if isinstance(frame, (bytes, bytearray)):
        frame = bytes(frame).decode("utf-8")
    return json.loads(frame)


def is_keepalive_reply(frame: Frame) -> bool:
    if isinstance(frame, (bytes, bytearray)):
        return bytes(frame) == PONG.encode("ascii")
    return frame == PONG
