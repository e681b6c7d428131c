"""
Flag Set - Operator-Marked Cases for the Next Improvement Request

Session-scoped; flags are not persisted.
"""

from typing import Iterable, Iterator, List, Set

from loguru import logger


class FlagSet:
    """Set of case keys marked for prioritized attention."""

    def __init__(self, keys: Iterable[str] = ()):
        self._keys: Set[str] = set(keys)

    def add(self, key: str) -> None:
        self._keys.add(key)
        logger.debug(f"Case flagged | Key: {key}")

    def remove(self, key: str) -> None:
        """Unflag a case; unknown keys are ignored."""
        self._keys.discard(key)
        logger.debug(f"Case unflagged | Key: {key}")

    def toggle(self, key: str) -> bool:
        """Flip a key and return whether it is now flagged."""
        if key in self._keys:
            self.remove(key)
            return False
        self.add(key)
        return True

    def clear(self) -> None:
        self._keys.clear()

    def sorted(self) -> List[str]:
        return sorted(self._keys)

    def __contains__(self, key: object) -> bool:
        return key in self._keys

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._keys))

    def __len__(self) -> int:
        return len(self._keys)

    def __bool__(self) -> bool:
        return bool(self._keys)
