"""Prompts module - centralized prompt templates for model calls.

Re-exports all prompt constants and utilities for easy importing:
    from services.prompts import PROMPT_VERSIONS, COMPLETE_STORY
    from services.prompts import IMAGE_VERIFIER, style_guide
"""

from services.prompts._base import DEFAULT_NEGATIVE_PROMPT, STYLE_GUIDES, style_guide
from services.prompts.story import (
    COMIC_MODE_INSTRUCTIONS,
    COMPLETE_STORY,
    IDEA_COMPLEXITY,
    IDEA_TONES,
    STORY_IDEA,
)
from services.prompts.verification import IMAGE_VERIFIER

# Increment when a prompt changes so stored results can be traced to it
PROMPT_VERSIONS = {
    "complete_story": "v2",
    "story_idea": "v1",
    "verify_image": "v2",
}

__all__ = [
    # Utilities
    "DEFAULT_NEGATIVE_PROMPT",
    "STYLE_GUIDES",
    "style_guide",
    # Version tracking
    "PROMPT_VERSIONS",
    # Story prompts
    "COMIC_MODE_INSTRUCTIONS",
    "COMPLETE_STORY",
    "IDEA_COMPLEXITY",
    "IDEA_TONES",
    "STORY_IDEA",
    # Verification prompts
    "IMAGE_VERIFIER",
]
