"""Durable key/value storage backends with external-change notification.

A backend stores opaque strings under string keys and notifies its
subscribers of changes written by *other* tabs sharing the same storage.
A tab is never notified of its own writes.  Failures surface as
:class:`~swagcart.exceptions.CartStorageError`.
"""

from __future__ import annotations

import asyncio
import logging
import os
import re
import tempfile
import threading
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from swagcart.exceptions import CartStorageError

_logger = logging.getLogger(__name__)

_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9._-]")


@dataclass(frozen=True, slots=True)
class StorageEvent:
    """A change made by another tab.

    ``key`` is ``None`` when the whole storage area was cleared.
    ``new_value`` is ``None`` when the key was removed.
    """

    key: str | None
    new_value: str | None
    origin: str
    old_value: str | None = None


StorageListener = Callable[[StorageEvent], None]


class StorageBackend(Protocol):
    """Structural storage interface used by the persistence and sync layers."""

    def get_item(self, key: str) -> str | None: ...

    def set_item(self, key: str, value: str) -> None: ...

    def remove_item(self, key: str) -> None: ...

    def subscribe(self, listener: StorageListener) -> Callable[[], None]: ...


def _new_origin() -> str:
    return uuid.uuid4().hex


def _noop() -> None:
    return None


class _ListenerSet:
    """Listeners paired with the loop they subscribed from.

    Delivery is marshalled onto that loop with ``call_soon_threadsafe`` so
    handlers always run on a later turn of the subscriber's own loop.
    """

    def __init__(self) -> None:
        self._entries: list[tuple[StorageListener, asyncio.AbstractEventLoop | None]] = []

    def add(self, listener: StorageListener) -> Callable[[], None]:
        try:
            loop: asyncio.AbstractEventLoop | None = asyncio.get_running_loop()
        except RuntimeError:
            loop = None
        entry = (listener, loop)
        self._entries.append(entry)

        def _unsubscribe() -> None:
            if entry in self._entries:
                self._entries.remove(entry)

        return _unsubscribe

    def dispatch(self, event: StorageEvent) -> None:
        for listener, loop in list(self._entries):
            if loop is None:
                listener(event)
            elif loop.is_closed():
                _logger.debug("Dropping storage event for closed loop key=%s", event.key)
            else:
                loop.call_soon_threadsafe(listener, event)

    def __len__(self) -> int:
        return len(self._entries)


class SharedMemoryStorage:
    """Process-local storage area shared by several tabs.

    Each :meth:`tab` view writes into the same dictionary and is notified
    of writes made through the other views.  ``quota_bytes`` bounds the
    total size of stored values; a write that would exceed it raises
    :class:`CartStorageError` and leaves the previous value in place.
    """

    def __init__(self, *, quota_bytes: int | None = None) -> None:
        self._data: dict[str, str] = {}
        self._views: list[MemoryStorage] = []
        self._quota_bytes = quota_bytes
        self._lock = threading.Lock()

    def tab(self, origin: str | None = None) -> MemoryStorage:
        view = MemoryStorage(self, origin or _new_origin())
        self._views.append(view)
        return view

    def detach(self, view: MemoryStorage) -> None:
        if view in self._views:
            self._views.remove(view)

    def snapshot(self) -> dict[str, str]:
        with self._lock:
            return dict(self._data)

    def _read(self, key: str) -> str | None:
        with self._lock:
            return self._data.get(key)

    def _write(self, key: str, value: str | None, origin: str) -> None:
        with self._lock:
            old = self._data.get(key)
            if value is None:
                if old is None:
                    return
                del self._data[key]
            else:
                if self._quota_bytes is not None:
                    used = sum(len(v.encode()) for k, v in self._data.items() if k != key)
                    needed = used + len(value.encode())
                    if needed > self._quota_bytes:
                        raise CartStorageError(
                            f"Storage quota exceeded: {needed} > {self._quota_bytes} bytes",
                            key=key,
                        )
                if old == value:
                    return
                self._data[key] = value
        self._broadcast(StorageEvent(key=key, new_value=value, old_value=old, origin=origin))

    def _clear(self, origin: str) -> None:
        with self._lock:
            if not self._data:
                return
            self._data.clear()
        self._broadcast(StorageEvent(key=None, new_value=None, origin=origin))

    def _broadcast(self, event: StorageEvent) -> None:
        for view in list(self._views):
            if view.origin != event.origin:
                view._listeners.dispatch(event)  # noqa: SLF001


class MemoryStorage:
    """One tab's view of a :class:`SharedMemoryStorage` area."""

    def __init__(self, area: SharedMemoryStorage, origin: str) -> None:
        self._area = area
        self.origin = origin
        self._listeners = _ListenerSet()

    def get_item(self, key: str) -> str | None:
        return self._area._read(key)  # noqa: SLF001

    def set_item(self, key: str, value: str) -> None:
        self._area._write(key, value, self.origin)  # noqa: SLF001

    def remove_item(self, key: str) -> None:
        self._area._write(key, None, self.origin)  # noqa: SLF001

    def clear(self) -> None:
        self._area._clear(self.origin)  # noqa: SLF001

    def subscribe(self, listener: StorageListener) -> Callable[[], None]:
        return self._listeners.add(listener)

    def close(self) -> None:
        self._area.detach(self)


class FileStorage:
    """One JSON file per key inside *directory*, replaced atomically.

    Files carry no change notification of their own; wrap the backend in
    :class:`BroadcastStorage` for cross-process tabs.
    """

    def __init__(self, directory: str | os.PathLike[str]) -> None:
        self._directory = Path(directory)
        self.origin = _new_origin()

    def path_for(self, key: str) -> Path:
        return self._directory / f"{_UNSAFE_KEY_CHARS.sub('_', key)}.json"

    def get_item(self, key: str) -> str | None:
        path = self.path_for(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as exc:
            raise CartStorageError(f"Failed to read {path}: {exc}", key=key) from exc

    def set_item(self, key: str, value: str) -> None:
        path = self.path_for(key)
        tmp_name: str | None = None
        try:
            self._directory.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=self._directory,
                prefix=f".{path.stem}.",
                suffix=".tmp",
                delete=False,
            ) as fh:
                tmp_name = fh.name
                fh.write(value)
            os.replace(tmp_name, path)
            tmp_name = None
        except OSError as exc:
            raise CartStorageError(f"Failed to write {path}: {exc}", key=key) from exc
        finally:
            if tmp_name is not None:
                Path(tmp_name).unlink(missing_ok=True)

    def remove_item(self, key: str) -> None:
        path = self.path_for(key)
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            raise CartStorageError(f"Failed to remove {path}: {exc}", key=key) from exc

    def subscribe(self, listener: StorageListener) -> Callable[[], None]:
        return _noop

    def close(self) -> None:
        return None


class StorageChannel(Protocol):
    """Transport announcing storage writes to other processes."""

    @property
    def origin(self) -> str: ...

    def publish(self, key: str, value: str | None) -> None: ...

    def add_listener(self, listener: StorageListener) -> Callable[[], None]: ...


class BroadcastStorage:
    """Delegate reads/writes to *inner* and announce writes over *channel*.

    Subscribers receive the channel's events for other origins.  Writes
    that fail in *inner* are not announced; a failed announcement is
    logged and does not fail the write.
    """

    def __init__(self, inner: StorageBackend, channel: StorageChannel) -> None:
        self._inner = inner
        self._channel = channel
        self._listeners = _ListenerSet()
        self._detach_channel: Callable[[], None] | None = None

    @property
    def origin(self) -> str:
        return self._channel.origin

    def get_item(self, key: str) -> str | None:
        return self._inner.get_item(key)

    def set_item(self, key: str, value: str) -> None:
        self._inner.set_item(key, value)
        self._announce(key, value)

    def remove_item(self, key: str) -> None:
        self._inner.remove_item(key)
        self._announce(key, None)

    def subscribe(self, listener: StorageListener) -> Callable[[], None]:
        if self._detach_channel is None:
            self._detach_channel = self._channel.add_listener(self._on_channel_event)
        return self._listeners.add(listener)

    def close(self) -> None:
        if self._detach_channel is not None:
            self._detach_channel()
            self._detach_channel = None

    def _announce(self, key: str, value: str | None) -> None:
        try:
            self._channel.publish(key, value)
        except Exception:
            _logger.warning("Storage change announcement failed key=%s", key, exc_info=True)

    def _on_channel_event(self, event: StorageEvent) -> None:
        if event.origin == self._channel.origin:
            return
        self._listeners.dispatch(event)
