"""Image verification prompt template."""

# Template placeholders: {description}, {setting}, {mood}, {visual_elements},
# {character_descriptions}
IMAGE_VERIFIER = """Analyze this anime image and verify it matches the requirements.

EXPECTED SCENE:
Description: {description}
Setting: {setting}
Mood: {mood}
Visual Elements: {visual_elements}

EXPECTED CHARACTERS:
{character_descriptions}

Score each criterion from 0 to 1:
1. CHARACTER CONSISTENCY: hair, eyes, outfit colors and proportions match the descriptions
2. SCENE ACCURACY: setting, actions, mood and visual elements match the scene
3. QUALITY: clean linework, correct anatomy, good lighting, no artifacts

Output MUST be valid JSON:
{{
  "character_consistency_score": 0.0,
  "scene_accuracy_score": 0.0,
  "quality_score": 0.0,
  "issues": ["specific problem"],
  "suggestions": "how to improve the image"
}}

Return ONLY the JSON object."""
