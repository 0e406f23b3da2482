"""
In-process stand-in for the backend's realtime channel: subscribers receive row
inserts for a table, optionally filtered to rows whose ``user_id`` matches.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional

from utils.logger import get_logger

_logger = get_logger(__name__)

InsertCallback = Callable[[Mapping[str, Any]], None]


@dataclass
class _Listener:
    table: str
    callback: InsertCallback
    user_id: Optional[str]


class RealtimeSubscription:
    def __init__(self, channel: "RealtimeChannel", listener: _Listener) -> None:
        self._channel = channel
        self._listener = listener

    def unsubscribe(self) -> None:
        self._channel._remove(self._listener)


class RealtimeChannel:
    def __init__(self) -> None:
        self._listeners: Dict[str, List[_Listener]] = {}

    def on_insert(
        self, table: str, callback: InsertCallback, *, user_id: Optional[str] = None
    ) -> RealtimeSubscription:
        listener = _Listener(table, callback, user_id)
        self._listeners.setdefault(table, []).append(listener)
        return RealtimeSubscription(self, listener)

    def publish_insert(self, table: str, row: Mapping[str, Any]) -> None:
        for listener in list(self._listeners.get(table, [])):
            if listener.user_id is not None and row.get("user_id") != listener.user_id:
                continue
            try:
                listener.callback(row)
            except Exception:
                # a failing subscriber never fails the insert
                _logger.exception(f"Realtime listener for '{table}' failed.")

    def _remove(self, listener: _Listener) -> None:
        listeners = self._listeners.get(listener.table, [])
        if listener in listeners:
            listeners.remove(listener)


_channel = RealtimeChannel()


def get_channel() -> RealtimeChannel:
    return _channel
