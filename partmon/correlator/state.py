"""In-memory per-device interval state.

Nothing here is persisted: an interval still open when the process stops is
lost rather than closed at a guessed time.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class DeviceIntervalState:
    """Open interval for one device."""

    device_id: str
    opened_at: Optional[datetime]
    last_value: bool
    reported_duration: Optional[float] = None


@dataclass(frozen=True)
class Transition(Generic[T]):
    """Outcome of an atomic update: the state to keep and a value for the caller."""

    state: Optional[DeviceIntervalState]
    result: T


class DeviceStateStore:
    """Thread-safe map of device id to its open interval."""

    def __init__(self) -> None:
        self._states: dict[str, DeviceIntervalState] = {}
        self._lock = threading.Lock()

    def get(self, device_id: str) -> Optional[DeviceIntervalState]:
        with self._lock:
            return self._states.get(device_id)

    def set(self, state: DeviceIntervalState) -> None:
        with self._lock:
            self._states[state.device_id] = state

    def clear(self, device_id: str) -> None:
        with self._lock:
            self._states.pop(device_id, None)

    def update(
        self,
        device_id: str,
        func: Callable[[Optional[DeviceIntervalState]], Transition[T]],
    ) -> T:
        """Apply ``func`` to the current state and store its outcome atomically.

        A ``None`` state in the transition removes the device.
        """
        with self._lock:
            transition = func(self._states.get(device_id))
            if transition.state is None:
                self._states.pop(device_id, None)
            else:
                self._states[device_id] = transition.state
            return transition.result

    def __len__(self) -> int:
        with self._lock:
            return len(self._states)
