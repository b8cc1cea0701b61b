"""Identifier generators for ledger, invoice and job records"""

import itertools
import threading
import uuid
from typing import Protocol


class IdGenerator(Protocol):
    def new_id(self, prefix: str) -> str:
        ...


class UuidIdGenerator:
    """Random identifiers: prefix plus 12 hex characters of a uuid4"""

    def new_id(self, prefix: str) -> str:
        return f"{prefix}{uuid.uuid4().hex[:12]}"


class SequentialIdGenerator:
    """Monotonic identifiers, one counter per prefix"""

    def __init__(self, width: int = 5):
        self.width = width
        self._counters: dict[str, itertools.count] = {}
        self._lock = threading.Lock()

    def new_id(self, prefix: str) -> str:
        with self._lock:
            counter = self._counters.setdefault(prefix, itertools.count(1))
            value = next(counter)
        return f"{prefix}{value:0{self.width}d}"


def build_id_generator(strategy: str) -> IdGenerator:
    """Pick the generator named by `Settings.id_strategy`"""
    if strategy == "sequential":
        return SequentialIdGenerator()
    return UuidIdGenerator()
