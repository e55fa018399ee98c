"""Pydantic request/response models for the Dream Weaver API."""

from pydantic import BaseModel, ConfigDict, Field

from models.generation import CharacterInput, CharacterProfile, GenerationRequest, Scene

# =============================================================================
# Response Models
# =============================================================================


class MessageResponse(BaseModel):
    """Generic message response."""

    message: str

    model_config = {"json_schema_extra": {"examples": [{"message": "Operation completed successfully"}]}}


class RootResponse(BaseModel):
    """Root endpoint response."""

    message: str
    version: str

    model_config = {"json_schema_extra": {"examples": [{"message": "Dream Weaver API", "version": "1.0.0"}]}}


class HealthResponse(BaseModel):
    """Health check response.

    ``server_key_configured`` tells clients whether they must send their own
    OpenRouter key in ``x-api-key``.
    """

    status: str
    server_key_configured: bool = False
    problems: list[str] = Field(default_factory=list)

    model_config = {
        "json_schema_extra": {
            "examples": [{"status": "healthy", "server_key_configured": False, "problems": []}]
        }
    }


class ErrorResponse(BaseModel):
    """Error body with a stable machine-readable code."""

    error: str
    code: str | None = None
    details: str | None = None

    model_config = {
        "json_schema_extra": {
            "examples": [{"error": "OpenRouter API key is required", "code": "API_KEY_REQUIRED"}]
        }
    }


class PresetResponse(BaseModel):
    """A quality preset."""

    id: str
    name: str
    description: str
    max_attempts: int
    skip_verification: bool
    strict_verification: bool
    verification_threshold: float
    cost_multiplier: float


class PresetListResponse(BaseModel):
    """All quality presets."""

    presets: list[PresetResponse]
    default: str


class StoryIdeaCharacter(BaseModel):
    name: str
    traits: str = ""


class StoryIdeaResponse(BaseModel):
    """A generated story idea."""

    outline: str
    characters: list[StoryIdeaCharacter]
    style: str
    scenes: int


class ModelListResponse(BaseModel):
    """Filtered model catalog."""

    data: list[dict]
    total: int
    cached: bool


class HistoryEntrySummary(BaseModel):
    """History entry without its result payload."""

    id: str
    timestamp: str
    title: str
    thumbnail: str
    input: dict


class HistoryEntryResponse(HistoryEntrySummary):
    """History entry including the final result snapshot."""

    result: dict


class HistoryListResponse(BaseModel):
    entries: list[HistoryEntrySummary]


# =============================================================================
# Request Models
# =============================================================================


class CharacterBody(BaseModel):
    """A character as entered by the user."""

    name: str = Field(min_length=1)
    traits: str = ""


class GenerateRequestBody(BaseModel):
    """Request body for a full generation run."""

    model_config = ConfigDict(populate_by_name=True)

    outline: str = Field(min_length=1)
    characters: list[CharacterBody] = Field(min_length=1, max_length=5)
    style: str = "shounen"
    scene_count: int = Field(default=4, ge=1, le=10, alias="scenes_per_episode")
    comic_mode: bool = Field(default=False, alias="comicMode")
    quality_preset: str = Field(default="standard", alias="qualityPreset")

    def to_request(self) -> GenerationRequest:
        return GenerationRequest(
            outline=self.outline.strip(),
            characters=tuple(CharacterInput(c.name.strip(), c.traits) for c in self.characters),
            style=self.style,
            scene_count=self.scene_count,
            comic_mode=self.comic_mode,
            quality_preset=self.quality_preset,
        )


class SceneBody(BaseModel):
    """Scene fields needed to regenerate and verify its image."""

    id: str = Field(min_length=1)
    description: str = ""
    characters_present: list[str] = Field(default_factory=list)
    setting: str = ""
    mood: str = ""
    visual_elements: list[str] = Field(default_factory=list)
    dialogue: str | None = None
    image_prompt: str = ""
    negative_prompt: str | None = None

    def to_scene(self) -> Scene:
        return Scene.from_dict(self.model_dump())


class RegenerateRequestBody(BaseModel):
    """Request body for regenerating one scene image."""

    model_config = ConfigDict(populate_by_name=True)

    scene: SceneBody
    characters: dict[str, dict] = Field(default_factory=dict)
    image_prompt: str = Field(min_length=1, alias="imagePrompt")
    negative_prompt: str | None = Field(default=None, alias="negativePrompt")
    modifications: str | None = None
    quality_preset: str = Field(default="standard", alias="qualityPreset")
    result_id: str | None = Field(default=None, alias="resultId")

    def character_profiles(self) -> dict[str, CharacterProfile]:
        return {
            name: CharacterProfile.from_dict(name, data) for name, data in self.characters.items()
        }


class GenerateIdeaRequest(BaseModel):
    """Request body for a random story idea."""

    genre: str | None = None
    tone: str = "balanced"
    complexity: str = "standard"
    keywords: str | None = None
