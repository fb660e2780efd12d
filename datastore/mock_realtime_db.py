from __future__ import annotations

import copy
import json
import logging
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Any, Callable, Dict, List, Optional, Tuple
from uuid import uuid4

from settings import get_settings

logger = logging.getLogger(__name__)

ValueCallback = Callable[[Any], None]
ErrorCallback = Callable[[BaseException], None]
Unsubscribe = Callable[[], None]


def _split_path(path: str) -> Tuple[str, ...]:
    parts = tuple(part for part in path.strip().split("/") if part)
    if not parts:
        raise ValueError("Database path must not be empty.")
    return parts


def _related(left: Tuple[str, ...], right: Tuple[str, ...]) -> bool:
    """Whether a write at one path can change the value seen at the other."""
    shortest = min(len(left), len(right))
    return left[:shortest] == right[:shortest]


class MockRealtimeDatabase:
    """JSON tree with per-path push subscriptions, persisted to a file.

    Subscribers receive the current value at their path once on subscribe and
    again after every write that touches the path, its ancestors or its
    descendants. A missing path is delivered as ``None``.
    """

    def __init__(self, name: str, persistence_path: Optional[Path] = None) -> None:
        self.name = name
        self._tree: Dict[str, Any] = {}
        self._subscribers: Dict[str, Tuple[Tuple[str, ...], ValueCallback, Optional[ErrorCallback]]] = {}
        self.persistence_path = persistence_path
        self._load_error: Optional[BaseException] = None
        self._lock = Lock()
        if persistence_path:
            persistence_path.parent.mkdir(parents=True, exist_ok=True)
            self._load_from_disk()

    def reference(self, path: str) -> "DatabaseReference":
        return DatabaseReference(self, path)

    def get(self, path: str) -> Any:
        parts = _split_path(path)
        with self._lock:
            return copy.deepcopy(self._lookup(parts))

    def set(self, path: str, value: Any) -> None:
        """Replace the value at ``path``; ``None`` or an empty mapping removes it."""
        parts = _split_path(path)
        payload = copy.deepcopy(value)
        with self._lock:
            if payload is None or payload == {}:
                self._remove(parts)
            else:
                node = self._tree
                for part in parts[:-1]:
                    child = node.get(part)
                    if not isinstance(child, dict):
                        child = {}
                        node[part] = child
                    node = child
                node[parts[-1]] = payload
            self._persist()
            deliveries = [
                (on_value, copy.deepcopy(self._lookup(sub_parts)))
                for sub_parts, on_value, _ in self._subscribers.values()
                if _related(sub_parts, parts)
            ]
        self._deliver(deliveries)

    def subscribe(
        self,
        path: str,
        on_value: ValueCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> Unsubscribe:
        parts = _split_path(path)
        token = uuid4().hex
        with self._lock:
            self._subscribers[token] = (parts, on_value, on_error)
            load_error = self._load_error
            current = copy.deepcopy(self._lookup(parts))

        if load_error is not None and on_error is not None:
            on_error(load_error)
        else:
            self._deliver([(on_value, current)])

        def unsubscribe() -> None:
            with self._lock:
                self._subscribers.pop(token, None)

        return unsubscribe

    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def _lookup(self, parts: Tuple[str, ...]) -> Any:
        node: Any = self._tree
        for part in parts:
            if not isinstance(node, dict) or part not in node:
                return None
            node = node[part]
        return node

    def _remove(self, parts: Tuple[str, ...]) -> None:
        node: Any = self._tree
        for part in parts[:-1]:
            if not isinstance(node, dict) or part not in node:
                return
            node = node[part]
        if isinstance(node, dict):
            node.pop(parts[-1], None)

    @staticmethod
    def _deliver(deliveries: List[Tuple[ValueCallback, Any]]) -> None:
        for on_value, value in deliveries:
            try:
                on_value(value)
            except Exception:  # noqa: BLE001 - one subscriber must not starve the rest
                logger.exception("Subscriber callback failed")

    def _persist(self) -> None:
        if not self.persistence_path:
            return
        self.persistence_path.write_text(json.dumps(self._tree, indent=2, sort_keys=True))

    def _load_from_disk(self) -> None:
        if not self.persistence_path or not self.persistence_path.exists():
            return

        try:
            raw = self.persistence_path.read_text() or "{}"
            data = json.loads(raw)
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning(
                "Could not read database file; starting empty",
                extra={"path": str(self.persistence_path), "reason": str(exc)},
            )
            self._load_error = exc
            data = {}

        if isinstance(data, dict):
            self._tree = data


class DatabaseReference:
    """Handle on one path of a ``MockRealtimeDatabase``."""

    def __init__(self, database: MockRealtimeDatabase, path: str) -> None:
        _split_path(path)
        self.database = database
        self.path = path

    def get(self) -> Any:
        return self.database.get(self.path)

    def set(self, value: Any) -> None:
        self.database.set(self.path, value)

    def subscribe(self, on_value: ValueCallback, on_error: Optional[ErrorCallback] = None) -> Unsubscribe:
        return self.database.subscribe(self.path, on_value, on_error)


@lru_cache
def build_default_database(
    name: Optional[str] = None,
    path: Optional[str] = None,
) -> MockRealtimeDatabase:
    settings = get_settings()
    database_name = settings.database_name if name is None else name
    database_path = settings.database_path if path is None else path
    persistence = Path(database_path) if database_path else None
    return MockRealtimeDatabase(name=database_name, persistence_path=persistence)
