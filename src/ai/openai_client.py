"""
OpenAI API Client

Provides a simple blocking wrapper for the OpenAI API.
Supports text generation and vision (label photo checks).

Usage:
    from src.ai import OpenAIClient

    client = OpenAIClient()

    # Text generation
    response = client.generate("Describe this winery in two sentences.")

    # Vision (with image)
    response = client.generate_with_image("Is this a wine label?", image_url)
"""

import base64
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from openai import OpenAI
from rich.console import Console

console = Console()


@dataclass
class OpenAIConfig:
    """Configuration for OpenAI client."""

    api_key: Optional[str] = None

    # Model selections (override via env: OPENAI_CHAT_MODEL, OPENAI_VISION_MODEL)
    chat_model: str = "gpt-5.2"  # Copy generation
    vision_model: str = "gpt-5.2"  # Label photo validation

    # Timeouts
    timeout_seconds: float = 120.0

    # Generation settings
    temperature: float = 0.7
    max_tokens: int = 2048


class OpenAIClient:
    """
    Blocking client for OpenAI chat completions (text and vision).

    Errors are printed and reported as an empty string so callers can fall
    back to deterministic content.
    """

    def __init__(self, config: Optional[OpenAIConfig] = None, client: Optional[OpenAI] = None):
        self.config = config or OpenAIConfig()
        # Override models from env if set
        if os.getenv("OPENAI_VISION_MODEL"):
            self.config.vision_model = os.getenv("OPENAI_VISION_MODEL")
        if os.getenv("OPENAI_CHAT_MODEL"):
            self.config.chat_model = os.getenv("OPENAI_CHAT_MODEL")

        if client is not None:
            self._client = client
            return

        # Get API key from config or environment
        api_key = self.config.api_key or os.getenv("OPENAI_API_KEY")
        if not api_key:
            raise ValueError(
                "OpenAI API key not found. Set OPENAI_API_KEY environment variable."
            )
        self._client = OpenAI(
            api_key=api_key,
            timeout=self.config.timeout_seconds,
        )

    def is_available(self) -> bool:
        """Check if OpenAI API is accessible."""
        try:
            self._client.models.list()
            return True
        except Exception as e:
            console.print(f"[red]OpenAI API not available: {e}[/red]")
            return False

    def _completion(self, model: str, messages: list[dict], temperature: Optional[float]) -> str:
        # GPT-5.x models use max_completion_tokens instead of max_tokens
        token_arg = "max_completion_tokens" if model.startswith("gpt-5") else "max_tokens"
        response = self._client.chat.completions.create(
            model=model,
            messages=messages,
            temperature=temperature if temperature is not None else self.config.temperature,
            **{token_arg: self.config.max_tokens},
        )
        return response.choices[0].message.content or ""

    def generate(
        self,
        prompt: str,
        model: Optional[str] = None,
        system: Optional[str] = None,
        temperature: Optional[float] = None,
    ) -> str:
        """
        Generate text response from a prompt.

        Args:
            prompt: The user prompt
            model: Model to use (defaults to chat_model)
            system: Optional system prompt
            temperature: Sampling temperature (0-1)

        Returns:
            Generated text response ("" on error)
        """
        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        try:
            return self._completion(model or self.config.chat_model, messages, temperature)
        except Exception as e:
            console.print(f"[red]Error generating response: {e}[/red]")
            return ""

    def generate_with_image(
        self,
        prompt: str,
        image: Union[str, Path, bytes],
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        mime_type: str = "image/jpeg",
    ) -> str:
        """
        Generate text response from a prompt and image.

        Args:
            prompt: The user prompt describing what to analyze
            image: Image as file path, URL, or bytes
            model: Vision model to use (defaults to vision_model)
            temperature: Sampling temperature
            mime_type: MIME type of raw bytes

        Returns:
            Generated text response ("" on error)
        """
        image_content = self._prepare_image_for_api(image, mime_type)
        if not image_content:
            console.print("[red]Failed to prepare image[/red]")
            return ""

        messages = [
            {
                "role": "user",
                "content": [{"type": "text", "text": prompt}, image_content],
            }
        ]
        try:
            return self._completion(model or self.config.vision_model, messages, temperature)
        except Exception as e:
            console.print(f"[red]Error generating vision response: {e}[/red]")
            return ""

    def _prepare_image_for_api(
        self, image: Union[str, Path, bytes], mime_type: str = "image/jpeg"
    ) -> Optional[dict]:
        """Convert image to OpenAI API format."""
        if isinstance(image, bytes):
            image_b64 = base64.b64encode(image).decode("utf-8")
            return {
                "type": "image_url",
                "image_url": {"url": f"data:{mime_type};base64,{image_b64}"},
            }

        if isinstance(image, str) and image.startswith(("http://", "https://")):
            return {"type": "image_url", "image_url": {"url": image}}

        image_path = Path(image)
        if not image_path.exists():
            return None

        image_b64 = base64.b64encode(image_path.read_bytes()).decode("utf-8")
        mime_type = {
            ".jpg": "image/jpeg",
            ".jpeg": "image/jpeg",
            ".png": "image/png",
            ".gif": "image/gif",
            ".webp": "image/webp",
        }.get(image_path.suffix.lower(), "image/jpeg")
        return {
            "type": "image_url",
            "image_url": {"url": f"data:{mime_type};base64,{image_b64}"},
        }
