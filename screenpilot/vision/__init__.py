"""
Vision models - providers that turn screenshots into action plans.
"""

from ..models import ModelProvider
from ..registry import Registry
from .anthropic_model import AnthropicVisionModel
from .base import BaseVisionModel, extract_json_object
from .gemini_model import GeminiVisionModel
from .http_model import HttpVisionModel
from .openai_model import OpenAIVisionModel
from .openrouter_model import CustomModel, OpenRouterModel

MODELS: Registry[BaseVisionModel] = Registry("model provider")
MODELS.register(ModelProvider.OPENAI, OpenAIVisionModel)
MODELS.register(ModelProvider.ANTHROPIC, AnthropicVisionModel)
MODELS.register(ModelProvider.OPENROUTER, OpenRouterModel)
MODELS.register(ModelProvider.GOOGLE, GeminiVisionModel)
MODELS.register(ModelProvider.CUSTOM, CustomModel)


def create_model(provider: ModelProvider) -> BaseVisionModel:
    """Create an uninitialized model for a provider."""
    return MODELS.create(provider)


__all__ = [
    "BaseVisionModel",
    "HttpVisionModel",
    "OpenAIVisionModel",
    "AnthropicVisionModel",
    "OpenRouterModel",
    "CustomModel",
    "GeminiVisionModel",
    "MODELS",
    "create_model",
    "extract_json_object",
]
