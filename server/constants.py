"""Centralized constants for image catalogs.

Single source of truth for catalog names and generation prompts shared by
the container, routers and health check.
"""

from typing import FrozenSet

# =============================================================================
# CATALOGS
# =============================================================================

MEALS_CATALOG = "meals"
PANTRY_CATALOG = "pantry"

CATALOG_NAMES: FrozenSet[str] = frozenset([
    MEALS_CATALOG,
    PANTRY_CATALOG,
])

# =============================================================================
# GENERATION PROMPTS
# =============================================================================

MEAL_PROMPT_TEMPLATE = (
    "A delicious, appetizing photo of {name}, professional food photography, "
    "well-plated, high quality, restaurant-style presentation"
)
MEAL_IMAGE_STYLE = "natural"

PANTRY_PROMPT_TEMPLATE = (
    "A professional photograph of {name}, grocery store quality, clean white "
    "background, well-lit, high quality product photography"
)
PANTRY_IMAGE_STYLE = "vivid"
