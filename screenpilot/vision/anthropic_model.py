"""
Anthropic Claude vision model (messages API).
"""

from typing import Any, Dict, Tuple

from ..errors import ModelError
from ..models import ModelProvider
from .http_model import HttpVisionModel

ANTHROPIC_VERSION = "2023-06-01"


class AnthropicVisionModel(HttpVisionModel):
    provider = ModelProvider.ANTHROPIC
    default_model = "claude-3-5-sonnet-20241022"
    default_base_url = "https://api.anthropic.com/v1"

    def complete(self, system_prompt, user_prompt, image_base64, media_type) -> Tuple[str, Dict[str, Any]]:
        headers = {
            "x-api-key": self.api_key,
            "anthropic-version": ANTHROPIC_VERSION,
            "content-type": "application/json",
        }
        payload = {
            "model": self.model_name,
            "max_tokens": self.parameters.get("max_tokens", 1000),
            "temperature": self.parameters.get("temperature", 0.1),
            "system": system_prompt,
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {
                            "type": "image",
                            "source": {
                                "type": "base64",
                                "media_type": media_type,
                                "data": image_base64,
                            },
                        },
                        {"type": "text", "text": user_prompt},
                    ],
                }
            ],
        }
        data = self.post_json(f"{self.base_url}/messages", headers, payload)

        blocks = data.get("content") if isinstance(data, dict) else None
        texts = [b.get("text", "") for b in blocks or [] if isinstance(b, dict) and b.get("type") == "text"]
        if not texts:
            raise ModelError(
                "anthropic response has no text content",
                code="PARSE_ERROR",
                details={"body": str(data)[:300]},
            )

        metadata = {"model": data.get("model", self.model_name), "stop_reason": data.get("stop_reason")}
        if data.get("usage"):
            metadata["usage"] = data["usage"]
        return "".join(texts), metadata
