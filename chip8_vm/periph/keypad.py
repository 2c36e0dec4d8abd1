"""
CHIP-8 VM — Input Source (16-key hex keypad + random byte source)

Contract used by the dispatcher:
  is_key_down(key)  -> bool        Ex9E / ExA1
  wait_key()        -> int | None  Fx0A; None means "nothing yet", and the
                                   dispatcher re-executes Fx0A next step
  random_byte()     -> int         Cxnn

Host keyboard capture is not part of the VM. ScriptedKeypad is a
thread-safe, programmable source: a front end (or a test) presses and
releases keys and queues key events; the RNG is a seedable random.Random.
"""

import abc
import random
import threading
from collections import deque
from typing import Iterable, Optional

NUM_KEYS = 16


class InputSource(abc.ABC):

    @abc.abstractmethod
    def is_key_down(self, key: int) -> bool:
        ...

    @abc.abstractmethod
    def wait_key(self) -> Optional[int]:
        ...

    @abc.abstractmethod
    def random_byte(self) -> int:
        ...


class ScriptedKeypad(InputSource):
    """Programmable keypad.

    Keys held with press() are reported by is_key_down(). wait_key()
    consumes queued events (queue_keys(), or every press()).
    """

    def __init__(self, held: Iterable[int] = (), seed: Optional[int] = None):
        self._lock = threading.Lock()
        self._held = set()
        self._events = deque()
        self._rng = random.Random(seed)
        for key in held:
            self._held.add(self._check_key(key))

    @staticmethod
    def _check_key(key: int) -> int:
        if not 0 <= key < NUM_KEYS:
            raise ValueError(f"key {key!r} outside 0x0-0xF")
        return key

    # --- Host side ---

    def press(self, key: int):
        key = self._check_key(key)
        with self._lock:
            self._held.add(key)
            self._events.append(key)

    def release(self, key: int):
        key = self._check_key(key)
        with self._lock:
            self._held.discard(key)

    def queue_keys(self, keys: Iterable[int]):
        """Queue key events for wait_key() without holding them down.

        All keys are validated first; a bad key queues nothing.
        """
        checked = [self._check_key(k) for k in keys]
        with self._lock:
            self._events.extend(checked)

    def seed(self, value: Optional[int]):
        self._rng.seed(value)

    # --- VM side ---

    def is_key_down(self, key: int) -> bool:
        with self._lock:
            return (key & 0xF) in self._held

    def wait_key(self) -> Optional[int]:
        with self._lock:
            if self._events:
                return self._events.popleft()
            return None

    def random_byte(self) -> int:
        return self._rng.randrange(256)
