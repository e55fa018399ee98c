"""Base utilities for prompts module.

Contains shared fragments used across prompt modules.
"""

# Style-specific art direction appended to story and regeneration prompts
STYLE_GUIDES = {
    "shoujo": "sparkles and flowers in background, soft lighting, pastel colors, large expressive eyes, delicate linework, romantic atmosphere",
    "shounen": "dynamic action pose, bold lines, dramatic lighting with strong shadows, intense expressions, energy effects, vibrant colors",
    "seinen": "realistic proportions, detailed backgrounds, sophisticated color palette, mature atmosphere, subtle shading",
    "josei": "elegant character designs, natural proportions, refined color choices, realistic emotional expressions",
    "slice-of-life": "everyday settings, warm natural lighting, gentle colors, relaxed expressions",
    "fantasy": "magical atmosphere, fantasy architecture or nature, glowing effects, adventurous composition",
    "sci-fi": "futuristic technology, neon accents, sleek surfaces, cinematic scale",
}

DEFAULT_STYLE_GUIDE = "high-quality anime art, detailed character designs"

DEFAULT_NEGATIVE_PROMPT = (
    "blurry, low quality, deformed, disfigured, bad anatomy, extra limbs, watermark, "
    "signature, inconsistent style, distorted faces, mutated hands"
)


def style_guide(style: str) -> str:
    """Return the art direction for an anime style tag."""
    return STYLE_GUIDES.get((style or "").lower(), DEFAULT_STYLE_GUIDE)
