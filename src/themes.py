"""SlidesGPT theme catalog — 18 themes across the Urban and Gradient categories."""

from __future__ import annotations

from typing import Any, Literal, get_args

ThemeId = Literal[
    # Urban
    "copenhagen-light",
    "copenhagen-dark",
    "tokyo-light",
    "tokyo-dark",
    "paris-light",
    "paris-dark",
    "berlin-light",
    "berlin-dark",
    "new-york-light",
    "new-york-dark",
    "la-light",
    "la-dark",
    "zurich-light",
    "zurich-dark",
    "shanghai-light",
    "shanghai-dark",
    # Gradient
    "cosmic-pulse-light",
    "cosmic-pulse-dark",
]

THEME_IDS: tuple[str, ...] = get_args(ThemeId)

CATEGORIES = ("urban", "gradient")

THEME_METADATA: dict[str, dict[str, str]] = {
    "copenhagen-light": {"name": "Copenhagen", "category": "urban", "description": "Soft Nordic Minimalism"},
    "copenhagen-dark": {"name": "Copenhagen Dark", "category": "urban", "description": "Soft Nordic Minimalism"},
    "tokyo-light": {"name": "Tokyo", "category": "urban", "description": "Neon Brutalism"},
    "tokyo-dark": {"name": "Tokyo Dark", "category": "urban", "description": "Neon Brutalism"},
    "paris-light": {"name": "Paris", "category": "urban", "description": "Modern Heritage"},
    "paris-dark": {"name": "Paris Dark", "category": "urban", "description": "Modern Heritage"},
    "berlin-light": {"name": "Berlin", "category": "urban", "description": "Industrial Monochrome"},
    "berlin-dark": {"name": "Berlin Dark", "category": "urban", "description": "Industrial Monochrome"},
    "new-york-light": {"name": "New York", "category": "urban", "description": "Vintage Yellow Cab"},
    "new-york-dark": {"name": "New York Dark", "category": "urban", "description": "Vintage Yellow Cab"},
    "la-light": {"name": "LA", "category": "urban", "description": "Sunset Pop"},
    "la-dark": {"name": "LA Dark", "category": "urban", "description": "Sunset Pop"},
    "zurich-light": {"name": "Zürich", "category": "urban", "description": "Modern Swiss Utility"},
    "zurich-dark": {"name": "Zürich Dark", "category": "urban", "description": "Modern Swiss Utility"},
    "shanghai-light": {"name": "Shanghai", "category": "urban", "description": "Techno-Global Commerce"},
    "shanghai-dark": {"name": "Shanghai Dark", "category": "urban", "description": "Techno-Global Commerce"},
    "cosmic-pulse-light": {"name": "Cosmic Pulse", "category": "gradient", "description": "High-Energy Neon Gradient"},
    "cosmic-pulse-dark": {"name": "Cosmic Pulse Dark", "category": "gradient", "description": "High-Energy Neon Gradient"},
}

# Suggested themes by presentation content type, best fit first.
THEME_RECOMMENDATIONS: dict[str, tuple[str, ...]] = {
    "corporate": ("zurich-light", "berlin-light", "copenhagen-light", "shanghai-light"),
    "finance": ("zurich-light", "shanghai-dark", "berlin-dark", "zurich-dark"),
    "tech": ("tokyo-light", "tokyo-dark", "shanghai-dark", "cosmic-pulse-light"),
    "startup": ("tokyo-dark", "la-light", "cosmic-pulse-light", "cosmic-pulse-dark"),
    "creative": ("la-light", "la-dark", "cosmic-pulse-light", "tokyo-light"),
    "marketing": ("la-light", "new-york-light", "cosmic-pulse-light", "tokyo-dark"),
    "luxury": ("paris-light", "paris-dark", "copenhagen-light", "copenhagen-dark"),
    "education": ("zurich-light", "berlin-light", "copenhagen-light", "paris-light"),
}

INSTRUCTIONS = (
    'To apply a theme, say "Use [theme name]" (e.g., "Use Tokyo Dark") '
    "or use the apply_theme tool with the theme_id."
)


def is_theme_id(value: str | None) -> bool:
    return value in THEME_METADATA


def describe_theme(theme_id: str) -> dict[str, str]:
    return {"id": theme_id, **THEME_METADATA[theme_id]}


def recommend_theme(content_type: str) -> str | None:
    """Return the best-fit theme for a content type such as "finance"."""
    candidates = THEME_RECOMMENDATIONS.get(content_type.strip().lower())
    return candidates[0] if candidates else None


def build_theme_options(recommended_theme_id: str | None = None) -> dict[str, Any]:
    """Theme-selection payload shared by slide creation and the theme picker."""
    all_themes = [describe_theme(theme_id) for theme_id in THEME_IDS]
    categories = {
        category: [t for t in all_themes if t["category"] == category]
        for category in CATEGORIES
    }
    return {
        "message": (
            "Your presentation has been created! Would you like to apply a custom theme? "
            f"We have {len(all_themes)} themes across {len(categories)} categories."
        ),
        "categories": categories,
        "all_themes": all_themes,
        "total_themes": len(all_themes),
        "recommended_theme_id": recommended_theme_id,
        "instructions": INSTRUCTIONS,
    }
