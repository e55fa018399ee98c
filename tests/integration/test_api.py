"""Integration tests for the HTTP API using a fake model provider."""

import json

import pytest
from fastapi.testclient import TestClient

from api import dependencies
from api.dependencies import get_model_catalog, get_provider_factory, reset_services
from api.server import create_app
from api.sse import split_sse_text
from conftest import FakeProvider, make_story
from services.model_catalog import ModelCatalog

GENERATE_BODY = {
    "outline": "A young knight befriends a shy dragon",
    "characters": [
        {"name": "Aria", "traits": "brave knight"},
        {"name": "Ember", "traits": "shy dragon"},
    ],
    "style": "fantasy",
    "scene_count": 3,
    "quality_preset": "draft",
}

API_KEY = {"x-api-key": "sk-test"}


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider(story_response=json.dumps(make_story(3)))


@pytest.fixture
def client(sample_config, provider):
    reset_services()
    dependencies._config = dict(sample_config)
    app = create_app()
    app.dependency_overrides[get_provider_factory] = lambda: (lambda api_key: provider)

    with TestClient(app) as test_client:
        yield test_client

    reset_services()


@pytest.mark.integration
class TestCoreRoutes:
    def test_root(self, client):
        assert client.get("/").json() == {"message": "Dream Weaver API", "version": "1.0.0"}

    def test_health(self, client):
        assert client.get("/api/health").json() == {
            "status": "healthy",
            "server_key_configured": False,
            "problems": [],
        }

    def test_health_reports_config_problems(self, client):
        dependencies._config["image_concurrency"] = 0
        dependencies._config["openrouter_api_key"] = "sk-server"

        data = client.get("/api/health").json()

        assert data["status"] == "degraded"
        assert data["server_key_configured"] is True
        assert data["problems"] == ["IMAGE_CONCURRENCY must be at least 1"]

    def test_presets(self, client):
        data = client.get("/api/presets").json()

        assert data["default"] == "standard"
        assert [p["id"] for p in data["presets"]] == ["draft", "standard", "premium"]
        assert data["presets"][2]["verification_threshold"] == 0.85


@pytest.mark.integration
class TestGenerateRoute:
    """Tests for POST /api/generate."""

    def test_missing_api_key(self, client):
        response = client.post("/api/generate", json=GENERATE_BODY)

        assert response.status_code == 401
        assert response.json() == {
            "error": "OpenRouter API key is required",
            "code": "API_KEY_REQUIRED",
        }

    def test_invalid_body(self, client):
        body = dict(GENERATE_BODY, scene_count=11)

        response = client.post("/api/generate", json=body, headers=API_KEY)

        assert response.status_code == 422

    def test_too_many_characters(self, client):
        body = dict(GENERATE_BODY, characters=[{"name": f"C{i}"} for i in range(6)])

        assert client.post("/api/generate", json=body, headers=API_KEY).status_code == 422

    def test_streams_until_complete(self, client, provider):
        response = client.post("/api/generate", json=GENERATE_BODY, headers=API_KEY)

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        events = split_sse_text(response.text)
        assert [e["stage"] for e in events][-2:] == ["images_complete", "complete"]
        assert events[3]["currentScene"] == 1
        assert events[3]["totalScenes"] == 3

        result = events[-1]["data"]
        assert len(result["scenes"]) == 3
        image_url = result["scenes"][0]["image_url"]
        assert client.get(image_url).status_code == 200

        stored = client.get(f"/api/results/{result['result_id']}").json()
        assert stored["metadata"]["total_scenes"] == 3
        assert client.get("/api/results").json() == {"results": [f"{result['result_id']}.json"]}

        history = client.get("/api/history").json()["entries"]
        assert len(history) == 1
        assert history[0]["title"] == GENERATE_BODY["outline"]

    def test_model_selection_header(self, client, provider):
        headers = dict(API_KEY, **{"x-model-selection": json.dumps({"imageModel": "custom/image"})})

        client.post("/api/generate", json=GENERATE_BODY, headers=headers)

        assert provider.text_calls[0][0] == "test/text"
        assert {call[0] for call in provider.image_calls} == {"custom/image"}

    def test_scenes_per_episode_alias(self, client, provider):
        body = dict(GENERATE_BODY)
        del body["scene_count"]
        body["scenes_per_episode"] = 2
        provider.story_response = json.dumps(make_story(2))

        events = split_sse_text(client.post("/api/generate", json=body, headers=API_KEY).text)

        assert len(events[-1]["data"]["scenes"]) == 2

    def test_camel_case_body(self, client, provider):
        body = {
            "outline": GENERATE_BODY["outline"],
            "characters": GENERATE_BODY["characters"],
            "style": "fantasy",
            "episodes": 1,
            "scenes_per_episode": 3,
            "qualityPreset": "draft",
            "comicMode": True,
        }

        events = split_sse_text(client.post("/api/generate", json=body, headers=API_KEY).text)

        assert "verification" not in [e["stage"] for e in events]
        assert events[-1]["data"]["metadata"]["quality_preset"] == "draft"
        assert provider.analyze_calls == []
        assert "COMIC MODE ENABLED" in provider.text_calls[0][1]

    def test_story_failure_streams_error(self, client, provider):
        provider.story_response = "no story today"

        events = split_sse_text(
            client.post("/api/generate", json=GENERATE_BODY, headers=API_KEY).text
        )

        assert events[-1]["stage"] == "error"
        assert events[-1]["message"].startswith("Error:")


@pytest.mark.integration
class TestRegenerateRoute:
    def test_regenerates_scene(self, client, provider):
        body = {
            "scene": {"id": "scene_1", "description": "Aria meets Ember", "characters_present": ["Aria"]},
            "characters": {"Aria": {"appearance": "silver hair", "outfit": "armor"}},
            "image_prompt": "anime knight",
            "modifications": "at sunset",
            "quality_preset": "draft",
        }

        response = client.post("/api/regenerate", json=body, headers=API_KEY)

        events = split_sse_text(response.text)
        assert all(e["stage"] == "regenerating" for e in events[:-1])
        assert events[-1]["stage"] == "complete"
        assert events[-1]["data"]["scene_id"] == "scene_1"
        assert provider.image_calls[0][1] == "anime knight, at sunset"

    def test_camel_case_body(self, client, provider):
        body = {
            "scene": {"id": "scene_2", "description": "Ember hides", "characters_present": ["Ember"]},
            "characters": {},
            "imagePrompt": "shy dragon",
            "negativePrompt": "blurry",
            "qualityPreset": "draft",
        }

        response = client.post("/api/regenerate", json=body, headers=API_KEY)

        assert response.status_code == 200
        assert split_sse_text(response.text)[-1]["stage"] == "complete"
        assert provider.image_calls[0][1:] == ("shy dragon", "blurry")


@pytest.mark.integration
class TestGenerateIdeaRoute:
    def test_returns_idea(self, client, provider):
        idea = {
            "outline": "A baker's bread grants wishes",
            "characters": [{"name": "Mika", "traits": "cheerful"}],
            "style": "slice-of-life",
            "scenes": 4,
        }
        provider.story_response = json.dumps(idea)

        response = client.post("/api/generate-idea", json={"genre": "romance"}, headers=API_KEY)

        assert response.status_code == 200
        assert response.json() == idea

    def test_invalid_idea(self, client, provider):
        provider.story_response = json.dumps({"outline": "only this"})

        response = client.post("/api/generate-idea", json={}, headers=API_KEY)

        assert response.status_code == 500
        assert response.json()["error"] == "Failed to generate story idea"


@pytest.mark.integration
class TestModelsRoute:
    def test_filters_by_category(self, client):
        async def fetch():
            return [
                {"id": "a/flux-pro", "name": "Flux", "architecture": {"modality": "text->image"}},
                {"id": "b/chat", "name": "Chat", "architecture": {"modality": "text->text"}},
            ]

        client.app.dependency_overrides[get_model_catalog] = lambda: ModelCatalog(fetch)

        data = client.get("/api/models", params={"category": "image"}).json()

        assert [m["id"] for m in data["data"]] == ["a/flux-pro"]
        assert data["cached"] is False

    def test_unknown_category(self, client):
        client.app.dependency_overrides[get_model_catalog] = lambda: ModelCatalog(lambda: None)

        assert client.get("/api/models", params={"category": "audio"}).status_code == 400

    def test_fetch_failure(self, client):
        async def fetch():
            raise ConnectionError("OpenRouter unreachable")

        client.app.dependency_overrides[get_model_catalog] = lambda: ModelCatalog(fetch)

        response = client.get("/api/models")

        assert response.status_code == 500
        assert response.json()["data"] == []


@pytest.mark.integration
class TestHistoryRoutes:
    def test_missing_entry(self, client):
        assert client.get("/api/history/nope").status_code == 404
        assert client.delete("/api/history/nope").status_code == 404

    def test_missing_result(self, client):
        assert client.get("/api/results/result_404").status_code == 404

    def test_clear(self, client):
        client.post("/api/generate", json=GENERATE_BODY, headers=API_KEY)

        response = client.delete("/api/history")

        assert response.json() == {"message": "Cleared 1 history entries"}
        assert client.get("/api/history").json() == {"entries": []}
