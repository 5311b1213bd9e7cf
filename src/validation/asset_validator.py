"""
Asset validation for extracted images.

Every image first gets a HEAD request: it must be reachable and served with
an image/* content type. Only an image that passes is then downloaded through
the fetcher (same headers, rate limit and timeout) and, with a vision client
configured, classified by the model from its bytes. A failed download or an
unusable model reply keeps the HEAD result.
"""

from dataclasses import dataclass
from typing import Optional

from rich.console import Console

from src.ai.copywriter import extract_json_object
from src.ai.openai_client import OpenAIClient
from src.errors import FetchError, NotFoundError
from src.extractors.http_fetcher import Fetcher, FetchResult

console = Console()

VISION_PROMPT = """You are checking product photos for a wine catalog.

Product: {name}

Is this image a photo of this wine's bottle or label (not a logo, banner,
icon or unrelated picture)? Rate its quality for a product page from 0-100.

Reply with JSON only:
{{"isProductImage": true, "qualityScore": 85, "reason": "short explanation"}}"""

HEAD_CONFIDENCE = 0.6


@dataclass
class ValidationResult:
    accepted: bool
    confidence: float
    reason: str
    method: str = "head"


class AssetValidator:
    """Decides whether an extracted image is plausibly a product photo."""

    def __init__(
        self,
        fetcher: Fetcher,
        vision_client: Optional[OpenAIClient] = None,
        min_quality: int = 70,
    ):
        self.fetcher = fetcher
        self.vision_client = vision_client
        self.min_quality = min_quality

    def validate(self, image_url: str, entity_name: str) -> ValidationResult:
        """
        Validate one image URL.

        Args:
            image_url: Absolute image URL
            entity_name: Name of the wine or winery it should depict

        Returns:
            ValidationResult with accepted flag, confidence (0-1) and reason
        """
        head = self.head_check(image_url)
        if not head.accepted or self.vision_client is None:
            return head

        try:
            image = self.fetcher.fetch(image_url)
        except FetchError as e:
            console.print(f"[dim]    Image download failed, keeping HEAD result: {e}[/dim]")
            return head
        return self._vision_check(image, entity_name) or head

    def _probe(self, image_url: str) -> FetchResult:
        try:
            return self.fetcher.head(image_url)
        except NotFoundError:
            raise
        except FetchError as e:
            # Some servers refuse HEAD
            if e.status in (403, 405, 501):
                return self.fetcher.fetch(image_url)
            raise

    def head_check(self, image_url: str) -> ValidationResult:
        """Lightweight existence + content type check."""
        try:
            response = self._probe(image_url)
        except FetchError as e:
            return ValidationResult(False, 0.0, f"unreachable: {e}")

        content_type = response.content_type
        if content_type.startswith("image/"):
            return ValidationResult(True, HEAD_CONFIDENCE, f"reachable {content_type}")
        return ValidationResult(False, 0.0, f"not an image ({content_type or 'no content type'})")

    def _vision_check(self, image: FetchResult, entity_name: str) -> Optional[ValidationResult]:
        """Model classification of downloaded image bytes, or None when the reply is unusable."""
        reply = self.vision_client.generate_with_image(
            VISION_PROMPT.format(name=entity_name),
            image.content,
            temperature=0.0,
            mime_type=image.content_type or "image/jpeg",
        )
        data = extract_json_object(reply)
        if data is None or "qualityScore" not in data:
            console.print("[dim]    Vision reply unusable, falling back to HEAD check[/dim]")
            return None

        try:
            quality = int(float(data.get("qualityScore", 0)))
        except (TypeError, ValueError):
            return None
        is_product = bool(data.get("isProductImage", data.get("isWineLabel", False)))
        reason = str(data.get("reason") or "")
        return ValidationResult(
            accepted=is_product and quality >= self.min_quality,
            confidence=max(0.0, min(quality / 100, 1.0)),
            reason=reason or f"vision score {quality}",
            method="vision",
        )
