"""
AI Service Module for the ProWine catalog

Provides AI-powered features using OpenAI:
- Product image validation (vision)
- Winery and wine copy generation (descriptions, stories, tasting notes)

Both are optional: without a key the pipeline validates images with a HEAD
check and writes template copy.

Configuration:
- Set OPENAI_API_KEY in .env file
- Optional: OPENAI_CHAT_MODEL, OPENAI_VISION_MODEL
"""

from .copywriter import (
    Copywriter,
    WineCopy,
    WineryCopy,
    extract_json_object,
    fallback_wine_copy,
    fallback_winery_copy,
)
from .openai_client import OpenAIClient, OpenAIConfig

__all__ = [
    # Clients
    "OpenAIClient",
    "OpenAIConfig",
    # Copy generation
    "Copywriter",
    "WineCopy",
    "WineryCopy",
    "extract_json_object",
    "fallback_wine_copy",
    "fallback_winery_copy",
]
