"""
OpenRouter model - OpenAI-compatible aggregator over many vision models.
Also serves 'custom' providers: any OpenAI-compatible endpoint set via base_url.
"""

from typing import Any, Dict, List

import httpx

from ..errors import ModelError
from ..models import ModelProvider
from .openai_model import OpenAIVisionModel


class OpenRouterModel(OpenAIVisionModel):
    """
    Parameters (ModelConfig.parameters):
        app_name: Sent as X-Title
        site_url: Sent as HTTP-Referer
    """

    provider = ModelProvider.OPENROUTER
    default_model = "anthropic/claude-3.5-sonnet"
    default_base_url = "https://openrouter.ai/api/v1"

    def build_headers(self) -> Dict[str, str]:
        headers = super().build_headers()
        headers["HTTP-Referer"] = self.parameters.get("site_url", "https://github.com/screenpilot/screenpilot")
        headers["X-Title"] = self.parameters.get("app_name", "ScreenPilot")
        return headers

    def list_models(self) -> List[Dict[str, Any]]:
        """List the models available through the aggregator."""
        self._ensure_initialized()
        try:
            response = self._client.get(f"{self.base_url}/models", headers=self.build_headers())
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise ModelError(
                f"Failed to list models: {e.response.status_code}",
                code="HTTP_ERROR",
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            raise ModelError(f"Failed to list models: {e}", code="NETWORK_ERROR", network=True) from e
        return response.json().get("data", [])

    def get_model_details(self, model_id: str) -> Dict[str, Any]:
        """Return the listing entry of one model (empty dict if unknown)."""
        for entry in self.list_models():
            if entry.get("id") == model_id:
                return entry
        return {}


class CustomModel(OpenRouterModel):
    """OpenAI-compatible endpoint configured entirely through base_url."""

    provider = ModelProvider.CUSTOM
    default_model = ""
    default_base_url = ""

    def on_initialize(self) -> None:
        if not self.base_url:
            raise ModelError("custom provider requires base_url", code="INVALID_CONFIG")
        if not self.model_name:
            raise ModelError("custom provider requires a model name", code="INVALID_CONFIG")
        super().on_initialize()
