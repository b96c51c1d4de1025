"""
OpenAI vision model (chat completions API).
"""

from typing import Any, Dict, List, Tuple

from ..errors import ModelError
from ..models import ModelProvider
from .http_model import HttpVisionModel


class OpenAIVisionModel(HttpVisionModel):
    provider = ModelProvider.OPENAI
    default_model = "gpt-4o"
    default_base_url = "https://api.openai.com/v1"

    def build_headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    def build_messages(
        self, system_prompt: str, user_prompt: str, image_base64: str, media_type: str
    ) -> List[Dict[str, Any]]:
        return [
            {"role": "system", "content": system_prompt},
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": user_prompt},
                    {
                        "type": "image_url",
                        "image_url": {
                            "url": f"data:{media_type};base64,{image_base64}",
                            "detail": "high",
                        },
                    },
                ],
            },
        ]

    def complete(self, system_prompt, user_prompt, image_base64, media_type) -> Tuple[str, Dict[str, Any]]:
        payload = {
            "model": self.model_name,
            "messages": self.build_messages(system_prompt, user_prompt, image_base64, media_type),
            "max_tokens": self.parameters.get("max_tokens", 1000),
            "temperature": self.parameters.get("temperature", 0.1),
        }
        data = self.post_json(f"{self.base_url}/chat/completions", self.build_headers(), payload)

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise ModelError(
                f"{self.provider.value} response has no message content",
                code="PARSE_ERROR",
                details={"body": str(data)[:300]},
            ) from e

        metadata = {"model": data.get("model", self.model_name)}
        if data.get("usage"):
            metadata["usage"] = data["usage"]
        return content or "", metadata
