"""
Google Gemini vision model through LangChain.
"""

from typing import Any, Dict, Optional, Tuple

from langchain_core.messages import HumanMessage, SystemMessage
from langchain_google_genai import ChatGoogleGenerativeAI

from logger import logger

from ..errors import ModelError
from ..models import ModelProvider
from .base import BaseVisionModel


def _message_text(content: Any) -> str:
    """LangChain content may be a string or a list of typed parts."""
    if isinstance(content, str):
        return content
    parts = []
    for part in content or []:
        if isinstance(part, str):
            parts.append(part)
        elif isinstance(part, dict) and part.get("type") == "text":
            parts.append(part.get("text", ""))
    return "".join(parts)


class GeminiVisionModel(BaseVisionModel):
    """
    Parameters (ModelConfig.parameters):
        temperature: Sampling temperature (default 0.2)
        max_retries: Retries on API errors (default 2)
    """

    provider = ModelProvider.GOOGLE
    default_model = "gemini-2.0-flash"

    def __init__(self, chat_model: Optional[ChatGoogleGenerativeAI] = None):
        super().__init__()
        self.chat_model = chat_model

    def on_initialize(self) -> None:
        if self.chat_model is None:
            self.chat_model = ChatGoogleGenerativeAI(
                model=self.model_name,
                google_api_key=self.api_key,
                temperature=self.parameters.get("temperature", 0.2),
                max_retries=self.parameters.get("max_retries", 2),
                timeout=self.timeout,
            )
            logger.info(f"[LLM] Created Gemini model: {self.model_name}")

    def on_cleanup(self) -> None:
        self.chat_model = None

    def complete(self, system_prompt, user_prompt, image_base64, media_type) -> Tuple[str, Dict[str, Any]]:
        messages = [
            SystemMessage(content=system_prompt),
            HumanMessage(
                content=[
                    {
                        "type": "image_url",
                        "image_url": {"url": f"data:{media_type};base64,{image_base64}"},
                    },
                    {"type": "text", "text": user_prompt},
                ]
            ),
        ]

        logger.info("[MODEL] Invoking Gemini...")
        try:
            reply = self.chat_model.invoke(messages)
        except Exception as e:
            status = getattr(e, "code", None)
            status = status if isinstance(status, int) else None
            raise ModelError(
                f"Gemini request failed: {e}",
                code="HTTP_ERROR" if status else "NETWORK_ERROR",
                status_code=status,
                network=status is None,
            ) from e

        metadata: Dict[str, Any] = {"model": self.model_name}
        usage = getattr(reply, "usage_metadata", None)
        if usage:
            metadata["usage"] = dict(usage)
        return _message_text(reply.content), metadata
