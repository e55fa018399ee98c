"""LRU cache for character description text.

Character descriptions are rebuilt for every scene that is verified or
regenerated. The text only depends on the profiles involved, so it is cached
per (names, profiles) key. The cache is an explicit object owned by whoever
constructs it; tests create their own or call ``clear()``.
"""

import logging
import time
from collections import OrderedDict
from typing import Callable, Optional

from models.generation import CharacterProfile

logger = logging.getLogger(__name__)

DEFAULT_MAX_ENTRIES = 50


class CharacterDescriptionCache:
    """Bounded LRU cache with optional TTL and an injectable clock.

    Example usage:
        cache = CharacterDescriptionCache(max_entries=50)
        text = cache.describe(["Hero"], characters)
    """

    def __init__(
        self,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        ttl_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the cache.

        Args:
            max_entries: Maximum number of cached descriptions
            ttl_seconds: Optional lifetime of an entry; None keeps entries until evicted
            clock: Time source, injectable for tests
        """
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.max_entries = max_entries
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: OrderedDict[str, tuple[float, str]] = OrderedDict()
        self.hits = 0
        self.misses = 0

    @staticmethod
    def make_key(names: list[str], characters: dict[str, CharacterProfile]) -> str:
        """Build a cache key from the names involved and their profiles."""
        parts = []
        for name in names:
            profile = characters.get(name)
            if profile is None:
                parts.append(f"{name}:?")
            else:
                parts.append(
                    f"{name}:{profile.appearance}:{profile.outfit}:{profile.visual_markers}"
                )
        return "|".join(parts)

    def get(self, key: str) -> Optional[str]:
        """Return the cached text for ``key`` or None."""
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            return None

        stored_at, value = entry
        if self.ttl_seconds is not None and self._clock() - stored_at > self.ttl_seconds:
            del self._entries[key]
            self.misses += 1
            return None

        self._entries.move_to_end(key)
        self.hits += 1
        return value

    def set(self, key: str, value: str) -> None:
        """Store ``value`` under ``key``, evicting the least recently used entry if full."""
        if key in self._entries:
            self._entries.move_to_end(key)
        elif len(self._entries) >= self.max_entries:
            self._entries.popitem(last=False)
        self._entries[key] = (self._clock(), value)

    def describe(self, names: list[str], characters: dict[str, CharacterProfile]) -> str:
        """Return the description block for ``names``, using the cache when possible."""
        key = self.make_key(names, characters)
        cached = self.get(key)
        if cached is not None:
            logger.debug("Using cached character descriptions")
            return cached

        description = describe_characters(names, characters)
        self.set(key, description)
        return description

    def clear(self) -> None:
        """Drop every entry and reset statistics."""
        self._entries.clear()
        self.hits = 0
        self.misses = 0

    def stats(self) -> dict:
        """Get cache statistics."""
        return {
            "size": len(self._entries),
            "max_size": self.max_entries,
            "hits": self.hits,
            "misses": self.misses,
        }

    def __len__(self) -> int:
        return len(self._entries)


def describe_characters(names: list[str], characters: dict[str, CharacterProfile]) -> str:
    """Render one line per character with appearance, outfit and markers."""
    lines = []
    for name in names:
        profile = characters.get(name)
        if profile is None:
            lines.append(f"{name}: (character details not found)")
            continue
        line = f"{name}: {profile.appearance}, wearing {profile.outfit}"
        if profile.visual_markers:
            line += f", distinctive features: {profile.visual_markers}"
        lines.append(line)
    return "\n".join(lines)
