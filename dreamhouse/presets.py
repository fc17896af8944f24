"""
Preset Library — option catalogs and recolor palettes.
Users pick a palette by name, we send the actual color directive.
"""

from typing import Optional

DESIGN_AREAS = [
    "Exterior",
    "Foyer",
    "Living Room",
    "Kitchen",
    "Dining Room",
    "Master Bedroom",
    "Master Bathroom",
]

STYLES = ["Modern", "Contemporary", "Minimalist", "Industrial", "Farmhouse", "Victorian", "Coastal"]

COLOR_PALETTES = ["Warm Neutrals", "Cool Tones", "Earthy & Organic", "Monochromatic", "Bold & Vibrant"]

FEATURES = [
    "Open Floor Plan",
    "Swimming Pool",
    "Home Office",
    "Gourmet Kitchen",
    "Fireplace",
    "Balcony",
    "Smart Home",
    "Home Gym",
    "Walk-in Closet",
]

RECOLOR_PALETTES = {
    "serene-blues": {
        "id": "serene-blues",
        "name": "Serene Blues & Whites",
        "directive": "serene light blues and crisp whites",
    },
    "earthy-greens": {
        "id": "earthy-greens",
        "name": "Earthy Greens & Browns",
        "directive": "deep earthy greens and warm browns",
    },
    "warm-terracotta": {
        "id": "warm-terracotta",
        "name": "Warm Terracotta & Creams",
        "directive": "warm terracotta and soft creams",
    },
    "modern-grays": {
        "id": "modern-grays",
        "name": "Modern Grays & Charcoals",
        "directive": "sleek modern grays and deep charcoals",
    },
    "jewel-tones": {
        "id": "jewel-tones",
        "name": "Vibrant Jewel Tones",
        "directive": "rich emerald green and royal purple jewel tones",
    },
}


def get_recolor_palette(key: str) -> Optional[dict]:
    """Look up a palette by id or display name."""
    if key in RECOLOR_PALETTES:
        return RECOLOR_PALETTES[key]
    for palette in RECOLOR_PALETTES.values():
        if palette["name"].lower() == key.lower():
            return palette
    return None


def list_recolor_palettes() -> list:
    return list(RECOLOR_PALETTES.values())


def get_catalog() -> dict:
    return {
        "areas": DESIGN_AREAS,
        "styles": STYLES,
        "color_palettes": COLOR_PALETTES,
        "features": FEATURES,
        "recolor_palettes": list_recolor_palettes(),
    }
