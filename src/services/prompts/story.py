"""Story generation prompt templates.

Contains prompts for:
- COMPLETE_STORY: characters, script and scenes (with image prompts) in one call
- STORY_IDEA: a random story idea to pre-fill the request form
"""

# Comic mode addendum, inserted into COMPLETE_STORY when requested
COMIC_MODE_INSTRUCTIONS = """

COMIC MODE ENABLED - TEXT IN IMAGES:
For each scene's image_prompt, include specific instructions for:
- Speech bubble placement and the exact dialogue text inside it
- Sound effects with positioning (e.g. bold red 'POW!' near the action)
- Caption boxes for narration
- Large, bold, highly readable lettering with high contrast"""

# Complete story prompt
# Template placeholders: {outline}, {character_list}, {style}, {style_guide},
# {scene_count}, {comic_mode_instructions}, {negative_prompt}
COMPLETE_STORY = """Generate a complete anime story with all details in a single structured response.

STORY OUTLINE: {outline}

CHARACTERS:
{character_list}

STYLE: {style} ({style_guide})
NUMBER OF SCENES: {scene_count}{comic_mode_instructions}

Generate:
1. CHARACTER PROFILES: appearance, outfit, personality, visual markers and a 3-color palette.
2. FULL SCRIPT: scene descriptions, actions, emotions and dialogue.
3. KEY SCENES: exactly {scene_count} visually impactful scenes. For each scene:
   - id (scene_1, scene_2, ...)
   - description: ONE sentence of at most 15 words for viewers to read
   - characters_present, setting, mood, visual_elements, dialogue
   - image_prompt: a complete, self-contained technical prompt for the image generator
   - negative_prompt

CHARACTER CONSISTENCY: repeat IDENTICAL character descriptions (hair, eyes, outfit
colors) verbatim in every image_prompt.

Output MUST be valid JSON in this EXACT format:
{{
  "characters": {{
    "character_name": {{
      "name": "Full Name",
      "appearance": "detailed description",
      "outfit": "detailed outfit",
      "personality": "personality traits",
      "visual_markers": "unique features",
      "color_palette": ["#color1", "#color2", "#color3"]
    }}
  }},
  "script": "Full script text with scenes and dialogue...",
  "scenes": [
    {{
      "id": "scene_1",
      "description": "One sentence describing what happens for viewers",
      "characters_present": ["Character1"],
      "setting": "Brief location name",
      "mood": "Emotional atmosphere",
      "visual_elements": ["element1", "element2"],
      "dialogue": "Character Name: Their dialogue line",
      "image_prompt": "masterpiece, high quality anime art, ...",
      "negative_prompt": "{negative_prompt}"
    }}
  ]
}}

Return ONLY the JSON object."""

# Story idea prompt
# Template placeholders: {genre}, {tone_description}, {character_range},
# {scene_range}, {keywords_section}
STORY_IDEA = """Generate a creative and engaging anime story idea in the {genre} genre with a {tone_description} tone.{keywords_section}

Requirements:
1. outline: 2-3 sentences with an engaging hook
2. characters: {character_range} unique characters, each with a name and traits
3. style: one of shoujo, shounen, seinen, slice-of-life, fantasy, sci-fi
4. scenes: a number of scenes in the range {scene_range}

Output MUST be valid JSON:
{{
  "outline": "Story outline...",
  "characters": [{{"name": "Name", "traits": "traits"}}],
  "style": "shounen",
  "scenes": 4
}}

Return ONLY the JSON object."""

IDEA_COMPLEXITY = {
    "simple": {"characters": "2-3", "scenes": "3-4"},
    "standard": {"characters": "3-4", "scenes": "5-6"},
    "epic": {"characters": "4-5", "scenes": "7-8"},
}

IDEA_TONES = {
    "light": "lighthearted, fun, upbeat",
    "balanced": "balanced mix of light and serious moments",
    "dark": "dark, serious, intense with dramatic stakes",
}
