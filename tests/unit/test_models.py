"""Unit tests for generation and preset models."""

import json

import pytest

from models.generation import (
    CharacterProfile,
    GeneratedScene,
    ProgressEvent,
    ProgressStage,
    Scene,
    SnapshotMetadata,
    VerificationResult,
    shorten_description,
)
from models.presets import (
    QUALITY_PRESETS,
    ModelSelection,
    get_preset,
    parse_model_selection_header,
)


class TestScene:
    """Tests for Scene parsing."""

    def test_from_dict_fills_fallback_id(self):
        """A scene without an id gets scene_<n> from its position."""
        scene = Scene.from_dict({"description": "A duel at dawn"}, index=2)
        assert scene.id == "scene_3"

    def test_description_trimmed_to_fifteen_words(self):
        text = " ".join(f"word{i}" for i in range(20))
        scene = Scene.from_dict({"id": "s", "description": text})
        assert scene.description.endswith("...")
        assert len(scene.description.split()) == 15

    def test_visual_elements_from_string(self):
        scene = Scene.from_dict({"id": "s", "visual_elements": "rain, neon, crowds"})
        assert scene.visual_elements == ["rain", "neon", "crowds"]

    def test_characters_present_from_string(self):
        scene = Scene.from_dict({"id": "s", "characters_present": "Aria"})
        assert scene.characters_present == ["Aria"]

        scene = Scene.from_dict({"id": "s", "characters_present": "Aria, Ember"})
        assert scene.characters_present == ["Aria", "Ember"]

    def test_empty_dialogue_becomes_none(self):
        assert Scene.from_dict({"id": "s", "dialogue": ""}).dialogue is None


class TestShortenDescription:
    def test_short_text_unchanged(self):
        assert shorten_description("Aria draws her sword") == "Aria draws her sword"

    def test_strips_trailing_punctuation_before_ellipsis(self):
        text = "one two three, four"
        assert shorten_description(text, max_words=3) == "one two three..."


class TestCharacterProfile:
    def test_palette_capped_at_three(self):
        profile = CharacterProfile.from_dict(
            "Aria", {"color_palette": ["#1", "#2", "#3", "#4"]}
        )
        assert profile.color_palette == ["#1", "#2", "#3"]

    def test_name_defaults_to_key(self):
        assert CharacterProfile.from_dict("Ember", {"appearance": "red dragon"}).name == "Ember"


class TestVerificationResult:
    """Tests for score clamping and pass computation."""

    def test_passed_recomputed_from_mean(self):
        """A model's own 'passed' flag is ignored in favor of the mean."""
        data = {
            "passed": False,
            "character_consistency_score": 0.8,
            "scene_accuracy_score": 0.8,
            "quality_score": 0.8,
        }
        result = VerificationResult.from_scores(data, threshold=0.75)
        assert result.passed is True
        assert result.average_score == pytest.approx(0.8)

    def test_strict_threshold_fails_same_scores(self):
        data = {
            "character_consistency_score": 0.8,
            "scene_accuracy_score": 0.8,
            "quality_score": 0.8,
        }
        assert VerificationResult.from_scores(data, threshold=0.85).passed is False

    def test_scores_clamped(self):
        data = {
            "character_consistency_score": 1.7,
            "scene_accuracy_score": -0.2,
            "quality_score": "0.5",
        }
        result = VerificationResult.from_scores(data, threshold=0.75)
        assert result.character_consistency_score == 1.0
        assert result.scene_accuracy_score == 0.0
        assert result.quality_score == 0.5

    def test_missing_score_raises(self):
        with pytest.raises(ValueError):
            VerificationResult.from_scores({"quality_score": 0.9}, threshold=0.75)

    def test_issues_string_wrapped(self):
        data = {
            "character_consistency_score": 0.9,
            "scene_accuracy_score": 0.9,
            "quality_score": 0.9,
            "issues": "hair color wrong",
        }
        assert VerificationResult.from_scores(data, 0.75).issues == ["hair color wrong"]


class TestGeneratedScene:
    def test_to_dict_omits_empty_optional_fields(self):
        scene = GeneratedScene(
            scene_id="scene_1", image_url="/generated/a.png", description="d", attempts=1
        )
        data = scene.to_dict()
        assert "error" not in data
        assert "verification" not in data

    def test_from_dict_restores_verification(self):
        data = {
            "scene_id": "scene_1",
            "image_url": "",
            "description": "d",
            "attempts": 3,
            "error": "No image in response",
            "verification": {
                "passed": True,
                "character_consistency_score": 0.9,
                "scene_accuracy_score": 0.9,
                "quality_score": 0.9,
            },
        }
        scene = GeneratedScene.from_dict(data)
        assert scene.has_image is False
        assert scene.verification.passed is True
        assert scene.error == "No image in response"


class TestSnapshotMetadata:
    def test_optional_flags_omitted_when_unset(self):
        data = SnapshotMetadata(total_scenes=3).to_dict()
        assert "partial" not in data
        assert "verification_pending" not in data
        assert data["success"] is True

    def test_optional_flags_included_when_set(self):
        data = SnapshotMetadata(total_scenes=3, verification_completed=False).to_dict()
        assert data["verification_completed"] is False


class TestProgressEvent:
    def test_wire_keys_are_camel_case(self):
        event = ProgressEvent(ProgressStage.IMAGE, 53, "Image 1/3", current_scene=1, total_scenes=3)
        payload = event.to_dict()
        assert payload["currentScene"] == 1
        assert payload["totalScenes"] == 3
        assert payload["stage"] == "image"
        assert "data" not in payload

    def test_from_dict_reads_camel_case(self):
        event = ProgressEvent.from_dict(
            {"stage": "complete", "progress": 100, "message": "done", "totalScenes": 2}
        )
        assert event.stage is ProgressStage.COMPLETE
        assert event.total_scenes == 2

    def test_terminal_stages(self):
        assert ProgressStage.COMPLETE.is_terminal
        assert ProgressStage.ERROR.is_terminal
        assert not ProgressStage.IMAGES_COMPLETE.is_terminal


class TestPresets:
    """Tests for quality presets."""

    def test_preset_values(self):
        assert QUALITY_PRESETS["draft"].max_attempts == 1
        assert QUALITY_PRESETS["draft"].skip_verification is True
        assert QUALITY_PRESETS["standard"].max_attempts == 3
        assert QUALITY_PRESETS["premium"].max_attempts == 5
        assert QUALITY_PRESETS["premium"].cost_multiplier == 1.5

    def test_thresholds(self):
        assert QUALITY_PRESETS["standard"].verification_threshold == 0.75
        assert QUALITY_PRESETS["premium"].verification_threshold == 0.85

    def test_unknown_preset_falls_back_to_standard(self):
        assert get_preset("ultra").id == "standard"
        assert get_preset(None).id == "standard"


class TestModelSelection:
    """Tests for model selection header parsing."""

    @pytest.fixture
    def defaults(self) -> ModelSelection:
        return ModelSelection("text/a", "image/b", "vision/c")

    def test_missing_header_uses_defaults(self, defaults):
        assert parse_model_selection_header(None, defaults) == defaults

    def test_malformed_header_uses_defaults(self, defaults):
        assert parse_model_selection_header("{not json", defaults) == defaults

    def test_camel_case_override(self, defaults):
        header = json.dumps({"imageModel": "image/custom"})
        selection = parse_model_selection_header(header, defaults)
        assert selection.image_model == "image/custom"
        assert selection.text_model == "text/a"

    def test_snake_case_override_and_blank_ignored(self, defaults):
        header = json.dumps({"text_model": "text/custom", "verificationModel": "  "})
        selection = parse_model_selection_header(header, defaults)
        assert selection.text_model == "text/custom"
        assert selection.verification_model == "vision/c"
