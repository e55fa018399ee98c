"""Tests for the character description cache."""

import pytest

from models.generation import CharacterProfile
from utils.prompt_cache import CharacterDescriptionCache, describe_characters


@pytest.fixture
def characters() -> dict[str, CharacterProfile]:
    return {
        "Aria": CharacterProfile(
            name="Aria",
            appearance="long silver hair",
            outfit="blue armor",
            visual_markers="scar over left eye",
        ),
        "Ember": CharacterProfile(name="Ember", appearance="small red dragon", outfit="none"),
    }


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class TestDescribeCharacters:
    def test_one_line_per_character(self, characters):
        text = describe_characters(["Aria", "Ember"], characters)
        lines = text.split("\n")
        assert lines[0] == (
            "Aria: long silver hair, wearing blue armor, "
            "distinctive features: scar over left eye"
        )
        assert lines[1] == "Ember: small red dragon, wearing none"

    def test_unknown_character(self, characters):
        assert describe_characters(["Nobody"], characters) == "Nobody: (character details not found)"


class TestCharacterDescriptionCache:
    """Tests for CharacterDescriptionCache."""

    def test_describe_hits_cache_second_time(self, characters):
        cache = CharacterDescriptionCache()

        first = cache.describe(["Aria"], characters)
        second = cache.describe(["Aria"], characters)

        assert first == second
        assert cache.hits == 1
        assert cache.misses == 1

    def test_changed_profile_is_a_new_key(self, characters):
        """Editing a profile changes the key, so stale text is never served."""
        cache = CharacterDescriptionCache()
        cache.describe(["Aria"], characters)

        characters["Aria"].outfit = "red cloak"
        text = cache.describe(["Aria"], characters)

        assert "red cloak" in text
        assert len(cache) == 2

    def test_lru_eviction(self):
        cache = CharacterDescriptionCache(max_entries=2)
        cache.set("a", "A")
        cache.set("b", "B")
        cache.get("a")
        cache.set("c", "C")

        assert cache.get("b") is None
        assert cache.get("a") == "A"
        assert cache.get("c") == "C"

    def test_ttl_expiry(self):
        clock = FakeClock()
        cache = CharacterDescriptionCache(ttl_seconds=10, clock=clock)
        cache.set("a", "A")

        clock.now = 5
        assert cache.get("a") == "A"

        clock.now = 11
        assert cache.get("a") is None
        assert len(cache) == 0

    def test_clear_resets_stats(self):
        cache = CharacterDescriptionCache()
        cache.set("a", "A")
        cache.get("a")
        cache.clear()

        assert cache.stats() == {"size": 0, "max_size": 50, "hits": 0, "misses": 0}

    def test_invalid_size(self):
        with pytest.raises(ValueError):
            CharacterDescriptionCache(max_entries=0)
