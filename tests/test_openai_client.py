"""
Tests for the OpenAI client wrapper against a mocked SDK client.
"""

import base64
from unittest.mock import MagicMock

from src.ai.openai_client import OpenAIClient, OpenAIConfig


def _client(reply: str = "ok"):
    sdk = MagicMock()
    sdk.chat.completions.create.return_value.choices[0].message.content = reply
    return OpenAIClient(OpenAIConfig(vision_model="gpt-4o"), client=sdk), sdk


def _image_part(sdk) -> dict:
    messages = sdk.chat.completions.create.call_args.kwargs["messages"]
    return messages[0]["content"][1]


class TestGenerateWithImage:
    def test_bytes_are_inlined_with_their_mime_type(self):
        client, sdk = _client('{"qualityScore": 90}')

        reply = client.generate_with_image("Is this a label?", b"\x89PNG", mime_type="image/png")

        assert reply == '{"qualityScore": 90}'
        url = _image_part(sdk)["image_url"]["url"]
        assert url == "data:image/png;base64," + base64.b64encode(b"\x89PNG").decode()

    def test_urls_are_passed_through_without_download(self, monkeypatch):
        def no_network(*args, **kwargs):
            raise AssertionError("image URLs must not be fetched by the client")

        monkeypatch.setattr("httpx.Client.send", no_network)
        client, sdk = _client()

        client.generate_with_image("Is this a label?", "https://prowine.test/bottle.jpg")

        assert _image_part(sdk)["image_url"]["url"] == "https://prowine.test/bottle.jpg"

    def test_api_error_returns_empty_string(self):
        client, sdk = _client()
        sdk.chat.completions.create.side_effect = RuntimeError("rate limited")

        assert client.generate_with_image("Is this a label?", b"img") == ""

    def test_missing_file_returns_empty_string(self, tmp_path):
        client, sdk = _client()

        assert client.generate_with_image("Is this a label?", tmp_path / "missing.jpg") == ""
        sdk.chat.completions.create.assert_not_called()
