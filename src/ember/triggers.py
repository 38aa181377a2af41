"""
=============================================================================
EXTERNAL EVENT SOURCES
=============================================================================

A blocking server can receive events from outside its own process. Once
per cycle the run loop drains an EventSource and dispatches every
(event, args) pair it yields.

=============================================================================
TRIGGER FILES
=============================================================================

The built-in source watches a directory:

    trigger_dir/
    ├── reload-config.json      {"path": "/etc/app.yml"}
    ├── broadcast.json          {"message": "hello everyone"}
    └── .broadcast.1f3c.tmp     (half-written, ignored)

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        ONE POLL                                      │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   while *.json files exist:                                          │
    │       pick the OLDEST file (creation time, then name)               │
    │       event = filename without ".json"                              │
    │       args  = json.load(file)          ← must be an object          │
    │       delete the file                                                │
    │       yield (event, args)              ← caller dispatches here     │
    │       list the directory again                                       │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Events arriving this way skip the protected-name filter of
Ember.trigger(): a trigger file named "end.json" does fire "end".

Files that cannot be decoded are renamed to "<name>.failed" so they stop
matching and can be inspected later.

Producers should use write_trigger(), which writes to a hidden temporary
file and renames it into place so a poll never sees a partial file.

=============================================================================
"""

import json
import logging
import os
import uuid
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple, Union


logger = logging.getLogger(__name__)

TRIGGER_SUFFIX = ".json"

ExternalEvent = Tuple[str, Dict[str, Any]]


class EventSource(ABC):
    """Inbound channel of events injected from outside the server."""

    @abstractmethod
    def poll(self) -> Iterator[ExternalEvent]:
        """
        Yield every pending (event, args) pair, oldest first.

        Each pair is consumed before it is yielded; the generator is only
        resumed after the caller has dispatched it.
        """


class DirectoryEventSource(EventSource):
    """
    EventSource backed by trigger files in a directory.

    directory may be a path, None (nothing to poll) or a zero-argument
    callable returning either; Ember passes a callable so the source always
    follows the live trigger_dir setting.
    """

    def __init__(self, directory: Union[str, None, Callable[[], Optional[str]]] = None):
        self._directory = directory

    @property
    def directory(self) -> Optional[str]:
        if callable(self._directory):
            return self._directory()
        return self._directory

    @directory.setter
    def directory(self, value: Union[str, None, Callable[[], Optional[str]]]) -> None:
        self._directory = value

    def poll(self) -> Iterator[ExternalEvent]:
        if self.directory is None:
            return
        while True:
            pending = self.pending()
            if not pending:
                return
            path = pending[0]
            consumed = self._consume(path)
            if consumed is not None:
                yield consumed

    def pending(self) -> List[str]:
        """Matching trigger files, oldest first."""
        if self.directory is None:
            return []
        entries = []
        try:
            with os.scandir(self.directory) as it:
                for entry in it:
                    if not _is_trigger_name(entry.name) or not entry.is_file():
                        continue
                    try:
                        stat = entry.stat()
                    except FileNotFoundError:
                        continue
                    created = getattr(stat, "st_birthtime", None) or stat.st_ctime
                    entries.append((created, stat.st_ctime_ns, entry.name, entry.path))
        except FileNotFoundError:
            logger.warning(f"Trigger directory {self.directory} disappeared")
            return []
        entries.sort()
        return [path for *_, path in entries]

    def _consume(self, path: str) -> Optional[ExternalEvent]:
        name = os.path.basename(path)
        event = name[: -len(TRIGGER_SUFFIX)]
        try:
            with open(path, "r", encoding="utf-8") as f:
                args = json.load(f)
        except FileNotFoundError:
            return None  # picked up by someone else
        except (OSError, ValueError) as e:
            logger.error(f"Unreadable trigger file {name}: {e}")
            self._quarantine(path)
            return None

        if not isinstance(args, dict):
            logger.error(f"Trigger file {name} must hold a JSON object, got {type(args).__name__}")
            self._quarantine(path)
            return None

        os.remove(path)
        logger.debug(f"Consumed trigger file {name}")
        return event, args

    @staticmethod
    def _quarantine(path: str) -> None:
        try:
            os.replace(path, path + ".failed")
        except FileNotFoundError:
            pass


def _is_trigger_name(name: str) -> bool:
    return (
        not name.startswith(".")
        and name.lower().endswith(TRIGGER_SUFFIX)
        and len(name) > len(TRIGGER_SUFFIX)
    )


def write_trigger(directory: str, event: str, **args: Any) -> str:
    """
    Drop a trigger file for a running server to pick up.

    Args:
        directory: The server's trigger_dir.
        event: Event name; becomes the file name.
        **args: JSON-serializable event arguments.

    Returns:
        Path of the written file.

    Raises:
        FileExistsError: If a trigger for the same event is still pending.
        ValueError: If the event name cannot be used as a file name.
    """
    if not event or os.sep in event or event.startswith("."):
        raise ValueError(f"Invalid trigger event name: {event!r}")

    target = os.path.join(directory, event + TRIGGER_SUFFIX)
    if os.path.exists(target):
        raise FileExistsError(f"Trigger for '{event}' is still pending: {target}")

    tmp = os.path.join(directory, f".{event}.{uuid.uuid4().hex[:8]}.tmp")
    try:
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(args, f)
        os.replace(tmp, target)
    except BaseException:
        if os.path.exists(tmp):
            os.remove(tmp)
        raise
    return target
