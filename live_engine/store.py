"""
Entity store adapters.

The engine reads and writes University, Match and Player records through a
small path-based interface: ``get``, ``set``, ``update`` and ``subscribe``,
plus ``modify`` for read-check-write and ``lock`` for work that must run in
one place at a time across every process sharing the store. Paths are either
a subtree (``"matches"``) or one record inside it (``"matches/m_1a2b"``).
Values are plain JSON-compatible dicts.

Delivery of change notifications is at-least-once; subscribers must tolerate
duplicates.
"""
import os
import copy
import json
import logging
import threading
from typing import Callable, Dict, List, Optional, Tuple

import redis

logger = logging.getLogger(__name__)

ChangeCallback = Callable[[str, Optional[dict]], None]

UNIVERSITIES = "universities"
MATCHES = "matches"
PLAYERS = "players"
STATS = "stats"

ENTITY_PATHS = (UNIVERSITIES, MATCHES, PLAYERS)


def split_path(path: str) -> Tuple[str, Optional[str]]:
    parts = [p for p in path.strip("/").split("/") if p]
    if not parts or len(parts) > 2:
        raise ValueError(f"Unsupported store path: {path!r}")
    return parts[0], (parts[1] if len(parts) == 2 else None)


def paths_overlap(a: str, b: str) -> bool:
    a, b = a.strip("/"), b.strip("/")
    return a == b or a.startswith(b + "/") or b.startswith(a + "/")


class EntityStore:
    """Subscriber bookkeeping and named locks shared by the concrete stores."""

    def __init__(self):
        self._subscribers: List[Tuple[str, ChangeCallback]] = []
        self._sub_lock = threading.Lock()
        self._named_locks: Dict[str, threading.Lock] = {}

    def get(self, path: str):
        raise NotImplementedError

    def set(self, path: str, value) -> None:
        raise NotImplementedError

    def modify(self, path: str, fn: Callable[[Optional[dict]], dict]) -> dict:
        """
        Atomically replace the value at ``path`` with ``fn(current)``.

        ``fn`` sees the value as stored at the moment of the write and may
        raise to abort; nothing is written then. It can be called more than
        once if a concurrent writer gets in first, so it must not have side
        effects beyond its return value. Returns the value written.
        """
        raise NotImplementedError

    def update(self, path: str, partial: dict) -> None:
        self.modify(path, lambda current: {**(current or {}), **partial})

    def lock(self, name: str, timeout: float = None, blocking_timeout: float = None):
        """
        Mutual exclusion across every user of this store.

        The in-process stores hand out one shared ``threading.Lock`` per name;
        ``timeout`` and ``blocking_timeout`` only apply to distributed locks.
        """
        with self._sub_lock:
            return self._named_locks.setdefault(name, threading.Lock())

    def ping(self) -> bool:
        return True

    def stop_listening(self):
        pass

    def subscribe(self, path: str, callback: ChangeCallback) -> Callable[[], None]:
        """Register ``callback`` for writes at or below ``path``. Returns an unsubscribe function."""
        entry = (path.strip("/"), callback)
        with self._sub_lock:
            self._subscribers.append(entry)

        def unsubscribe():
            with self._sub_lock:
                if entry in self._subscribers:
                    self._subscribers.remove(entry)

        return unsubscribe

    def _dispatch(self, path: str, value) -> None:
        with self._sub_lock:
            targets = [cb for sub_path, cb in self._subscribers if paths_overlap(sub_path, path)]

        for callback in targets:
            try:
                callback(path, value)
            except Exception:
                logger.exception(f"Change subscriber failed for {path}")


class MemoryEntityStore(EntityStore):
    """In-process store for local development and tests."""

    def __init__(self, initial: Dict[str, dict] = None):
        super().__init__()
        self._data: Dict[str, dict] = copy.deepcopy(initial) if initial else {}
        self._lock = threading.RLock()

    def _read(self, root: str, child: Optional[str]):
        node = self._data.get(root)
        if child is not None:
            node = node.get(child) if isinstance(node, dict) else None
        return copy.deepcopy(node)

    def _write(self, root: str, child: Optional[str], value):
        if child is None:
            if value is None:
                self._data.pop(root, None)
            else:
                self._data[root] = value
        else:
            subtree = self._data.setdefault(root, {})
            if value is None:
                subtree.pop(child, None)
            else:
                subtree[child] = value

    def get(self, path: str):
        root, child = split_path(path)
        with self._lock:
            return self._read(root, child)

    def set(self, path: str, value) -> None:
        root, child = split_path(path)
        value = copy.deepcopy(value)
        with self._lock:
            self._write(root, child, value)
        self._dispatch(path, copy.deepcopy(value))

    def modify(self, path: str, fn) -> dict:
        root, child = split_path(path)
        with self._lock:
            value = copy.deepcopy(fn(self._read(root, child)))
            self._write(root, child, value)
        self._dispatch(path, copy.deepcopy(value))
        return copy.deepcopy(value)


class RedisEntityStore(EntityStore):
    """
    Redis-backed store.

    Each subtree is a hash (``<prefix>matches`` → id → JSON record); a path
    without children such as ``stats`` is a plain string key. Writes are
    announced on ``<prefix>changes`` so every process sharing the Redis
    instance sees them.
    """

    def __init__(self, redis_url: str = None, prefix: str = "live:",
                 redis_client: redis.Redis = None, hashed_roots=ENTITY_PATHS):
        super().__init__()
        self.redis_url = redis_url or os.getenv('REDIS_URL', 'redis://localhost:6379')
        self.redis = redis_client or redis.from_url(
            self.redis_url,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5
        )
        self.prefix = prefix
        self.hashed_roots = set(hashed_roots)
        self.changes_channel = f"{prefix}changes"
        self._pubsub = None
        self._listener_thread = None

    def _key(self, root: str) -> str:
        return f"{self.prefix}{root}"

    def get(self, path: str):
        root, child = split_path(path)
        key = self._key(root)

        if root in self.hashed_roots:
            if child is None:
                raw = self.redis.hgetall(key)
                return {k: json.loads(v) for k, v in raw.items()}
            raw = self.redis.hget(key, child)
            return json.loads(raw) if raw else None

        raw = self.redis.get(key)
        value = json.loads(raw) if raw else None
        if child is not None:
            return value.get(child) if isinstance(value, dict) else None
        return value

    def set(self, path: str, value) -> None:
        root, child = split_path(path)
        key = self._key(root)

        if root in self.hashed_roots:
            if child is None:
                pipe = self.redis.pipeline(transaction=True)
                pipe.delete(key)
                if value:
                    pipe.hset(key, mapping={k: json.dumps(v) for k, v in value.items()})
                pipe.execute()
            elif value is None:
                self.redis.hdel(key, child)
            else:
                self.redis.hset(key, child, json.dumps(value))
        else:
            if child is not None:
                raise ValueError(f"Path {path!r} is not inside a record subtree")
            if value is None:
                self.redis.delete(key)
            else:
                self.redis.set(key, json.dumps(value))

        self._announce(path)

    def modify(self, path: str, fn) -> dict:
        root, child = split_path(path)
        hashed = root in self.hashed_roots
        if hashed and child is None:
            raise ValueError(f"Path {path!r} is a whole subtree; modify one record")
        if not hashed and child is not None:
            raise ValueError(f"Path {path!r} is not inside a record subtree")

        key = self._key(root)

        def apply(pipe):
            raw = pipe.hget(key, child) if hashed else pipe.get(key)
            value = fn(json.loads(raw) if raw else None)
            pipe.multi()
            if hashed:
                pipe.hset(key, child, json.dumps(value))
            else:
                pipe.set(key, json.dumps(value))
            return value

        # WATCH on the key; a concurrent write makes redis-py rerun apply
        value = self.redis.transaction(apply, key, value_from_callable=True)
        self._announce(path)
        return value

    def lock(self, name: str, timeout: float = None, blocking_timeout: float = None):
        return self.redis.lock(self._key(name), timeout=timeout, blocking_timeout=blocking_timeout)

    def ping(self) -> bool:
        try:
            return bool(self.redis.ping())
        except redis.RedisError:
            return False

    def _announce(self, path: str):
        self.redis.publish(self.changes_channel, json.dumps({"path": path}))

    def subscribe(self, path: str, callback: ChangeCallback) -> Callable[[], None]:
        unsubscribe = super().subscribe(path, callback)
        if self._pubsub is None:
            self._pubsub = self.redis.pubsub(ignore_subscribe_messages=True)
            self._pubsub.subscribe(**{self.changes_channel: self._message_handler})
            self._listener_thread = self._pubsub.run_in_thread(sleep_time=0.1, daemon=True)
        return unsubscribe

    def _message_handler(self, message):
        if message.get('type') != 'message':
            return
        try:
            path = json.loads(message['data'])["path"]
        except (ValueError, KeyError, TypeError):
            logger.warning(f"Ignoring malformed change message: {message.get('data')!r}")
            return
        self._dispatch(path, self.get(path))

    def stop_listening(self):
        if self._listener_thread is not None:
            self._listener_thread.stop()
            self._listener_thread = None
        if self._pubsub is not None:
            self._pubsub.close()
            self._pubsub = None
