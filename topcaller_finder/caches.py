"""
Memoization shared by top-caller searches of one session.

Both caches may be read and filled by several searches running on different
threads. Neither is invalidated automatically; whoever owns the session clears
them when the code base changes.
"""

import logging
import threading
from typing import Dict, List, Optional, Tuple

from .models import MethodSymbol

logger = logging.getLogger(__name__)

MAX_CACHE_SIZE = 1000

UNKNOWN_OWNER = "UnknownClass"


def method_key(method: MethodSymbol) -> str:
    """
    Canonical dedup key: ``"<returnType> <owner>.<name>(<paramTypes,...>)"``.
    """
    owner = method.declaring_type.qualified_name or method.declaring_type.binary_name or UNKNOWN_OWNER
    return_type = method.return_type or "void"
    params = ",".join(method.parameter_types)
    return f"{return_type} {owner}.{method.name}({params})"


class MethodKeyCache:
    """Memoizes :func:`method_key` per method symbol."""

    def __init__(self):
        self._keys: Dict[MethodSymbol, str] = {}
        self._lock = threading.Lock()

    def key_of(self, method: MethodSymbol) -> str:
        with self._lock:
            key = self._keys.get(method)
        if key is not None:
            return key
        key = method_key(method)
        with self._lock:
            return self._keys.setdefault(method, key)

    def clear(self):
        with self._lock:
            self._keys.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._keys)


class CallerCache:
    """
    Method key -> callers found for that method.

    Entries are addressed by method identity only, whatever receiver filter was
    active when they were computed.
    """

    def __init__(self, max_size: int = MAX_CACHE_SIZE):
        self.max_size = max_size
        self._entries: Dict[str, Tuple[MethodSymbol, ...]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[List[MethodSymbol]]:
        with self._lock:
            callers = self._entries.get(key)
        return list(callers) if callers is not None else None

    def put(self, key: str, callers: List[MethodSymbol]):
        with self._lock:
            self._entries[key] = tuple(callers)

    def trim_if_full(self) -> bool:
        """Drop every entry once the cache grew past ``max_size``."""
        with self._lock:
            if len(self._entries) <= self.max_size:
                return False
            self._entries.clear()
        logger.debug(f"Caller cache exceeded {self.max_size} entries and was cleared")
        return True

    def clear(self):
        with self._lock:
            self._entries.clear()

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
