from __future__ import annotations

import json
from typing import Any, Dict

from .errors import MalformedMessage
from .models import GameMessage
from .protocol import LEGACY_INBOUND, LEGACY_OUTBOUND, REVISIONS

SEPARATOR = " "


class Codec:
    """Line codec: ``<action> <payload-as-json>``."""

    def __init__(self, revision: str = "current"):
        if revision not in REVISIONS:
            raise ValueError(f"Unknown protocol revision: {revision}")
        self.revision = revision
        self._inbound: Dict[str, str] = LEGACY_INBOUND if revision == "legacy" else {}
        self._outbound: Dict[str, str] = LEGACY_OUTBOUND if revision == "legacy" else {}

    def encode(self, action: str, payload: Any = None) -> str:
        if payload is None:
            payload = {}
        body = json.dumps(payload, separators=(",", ":"))
        return self._outbound.get(action, action) + SEPARATOR + body

    def decode(self, line: str | bytes) -> GameMessage:
        if isinstance(line, (bytes, bytearray)):
            try:
                line = line.decode("utf-8")
            except UnicodeDecodeError as exc:
                raise MalformedMessage(f"Message is not valid UTF-8: {exc}") from exc

        action, sep, rest = line.rstrip("\r\n").partition(SEPARATOR)
        if not sep or not action:
            raise MalformedMessage(f"Message has no action/payload separator: {line!r}")

        try:
            payload = json.loads(rest)
        except json.JSONDecodeError as exc:
            raise MalformedMessage(f"Invalid payload for {action!r}: {exc}") from exc

        return GameMessage(action=self._inbound.get(action, action), payload=payload)


_default = Codec()


def encode(action: str, payload: Any = None) -> str:
    return _default.encode(action, payload)


def decode(line: str | bytes) -> GameMessage:
    return _default.decode(line)
