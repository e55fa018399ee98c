"""Tests for image verification with timeouts."""

import asyncio
import json

import pytest

from conftest import PNG_DATA_URL, FakeProvider
from models.generation import CharacterProfile, Scene
from services.verification_runner import VerificationItem, VerificationRunner


@pytest.fixture
def characters() -> dict[str, CharacterProfile]:
    return {"Aria": CharacterProfile(name="Aria", appearance="silver hair", outfit="armor")}


def make_items(count: int) -> list[VerificationItem]:
    return [
        VerificationItem(
            index=i,
            scene=Scene(
                id=f"scene_{i + 1}",
                description="Aria raises her sword",
                characters_present=["Aria"],
                setting="castle",
                mood="tense",
                visual_elements=["banners", "torches"],
            ),
            image_data=PNG_DATA_URL,
        )
        for i in range(count)
    ]


def scores(value: float) -> str:
    return json.dumps(
        {
            "character_consistency_score": value,
            "scene_accuracy_score": value,
            "quality_score": value,
            "issues": [],
            "suggestions": "",
        }
    )


class TestVerifyScene:
    @pytest.mark.asyncio
    async def test_prompt_includes_scene_and_characters(self, characters):
        provider = FakeProvider()
        runner = VerificationRunner(provider)

        result = await runner.verify_scene(
            PNG_DATA_URL, make_items(1)[0].scene, characters, "test/vision"
        )

        assert result.passed is True
        model, prompt, image = provider.analyze_calls[0]
        assert model == "test/vision"
        assert image == PNG_DATA_URL
        assert "Aria raises her sword" in prompt
        assert "banners, torches" in prompt
        assert "Aria: silver hair, wearing armor" in prompt

    @pytest.mark.asyncio
    async def test_threshold_applied(self, characters):
        provider = FakeProvider(verification_behavior=lambda p: scores(0.8))
        runner = VerificationRunner(provider)
        scene = make_items(1)[0].scene

        standard = await runner.verify_scene(PNG_DATA_URL, scene, characters, "m", 0.75)
        strict = await runner.verify_scene(PNG_DATA_URL, scene, characters, "m", 0.85)

        assert standard.passed is True
        assert strict.passed is False


class TestVerifyWithTimeout:
    @pytest.mark.asyncio
    async def test_timeout_returns_none_and_abandons(self, characters):
        provider = FakeProvider(analyze_delay=0.2)
        runner = VerificationRunner(provider, item_timeout=0.02)

        result = await runner.verify_with_timeout(
            PNG_DATA_URL, make_items(1)[0].scene, characters, "m"
        )

        assert result is None
        assert runner.pending_background == 1
        await asyncio.sleep(0.3)
        assert runner.pending_background == 0

    @pytest.mark.asyncio
    async def test_unusable_response_returns_none(self, characters):
        provider = FakeProvider(verification_behavior=lambda p: "I cannot see the image")
        runner = VerificationRunner(provider)

        result = await runner.verify_with_timeout(
            PNG_DATA_URL, make_items(1)[0].scene, characters, "m"
        )

        assert result is None

    @pytest.mark.asyncio
    async def test_provider_error_returns_none(self, characters):
        def behavior(prompt: str) -> str:
            raise ConnectionError("vision model unavailable")

        runner = VerificationRunner(FakeProvider(verification_behavior=behavior))

        result = await runner.verify_with_timeout(
            PNG_DATA_URL, make_items(1)[0].scene, characters, "m"
        )

        assert result is None


class TestVerificationRunner:
    """Tests for batch verification."""

    @pytest.mark.asyncio
    async def test_empty_batch_is_complete(self, characters):
        report = await VerificationRunner(FakeProvider()).run([], characters, "m")

        assert report.completed is True
        assert report.results == {}

    @pytest.mark.asyncio
    async def test_results_keyed_by_index(self, characters):
        progress = []

        async def on_done(done, total, index, result):
            progress.append((done, total))

        runner = VerificationRunner(FakeProvider())
        report = await runner.run(make_items(3), characters, "m", on_item_done=on_done)

        assert report.completed is True
        assert sorted(report.results) == [0, 1, 2]
        assert progress == [(1, 3), (2, 3), (3, 3)]

    @pytest.mark.asyncio
    async def test_item_timeout_leaves_scene_unverified(self, characters):
        calls = 0

        class OneSlowProvider(FakeProvider):
            async def analyze_image(self, model, prompt, image_data):
                nonlocal calls
                calls += 1
                if calls == 1:
                    await asyncio.sleep(0.3)
                return await super().analyze_image(model, prompt, image_data)

        runner = VerificationRunner(OneSlowProvider(), item_timeout=0.05, batch_timeout=1.0)
        report = await runner.run(make_items(2), characters, "m")

        assert report.completed is True
        assert sorted(report.results) == [1]
        await asyncio.sleep(0.35)

    @pytest.mark.asyncio
    async def test_batch_timeout_discards_late_results(self, characters):
        provider = FakeProvider(analyze_delay=0.2)
        runner = VerificationRunner(provider, item_timeout=1.0, batch_timeout=0.05)

        report = await runner.run(make_items(2), characters, "m")

        assert report.completed is False
        assert report.results == {}
        assert runner.pending_background == 2

        # Late results finish in the background but are not recorded
        await asyncio.sleep(0.3)
        assert report.results == {}
        assert runner.pending_background == 0

    @pytest.mark.asyncio
    async def test_batch_timeout_keeps_results_already_in(self, characters):
        class SlowSecondProvider(FakeProvider):
            async def analyze_image(self, model, prompt, image_data):
                if image_data == "slow":
                    await asyncio.sleep(0.3)
                return await super().analyze_image(model, prompt, image_data)

        items = make_items(2)
        items[1].image_data = "slow"
        runner = VerificationRunner(SlowSecondProvider(), item_timeout=1.0, batch_timeout=0.1)

        report = await runner.run(items, characters, "m")

        assert report.completed is False
        assert list(report.results) == [0]
        assert report.results[0].passed is True

        await asyncio.sleep(0.35)
        assert list(report.results) == [0]
