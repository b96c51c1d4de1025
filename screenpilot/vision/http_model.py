"""
HTTP vision model - shared transport for providers reached over a chat endpoint.
"""

from typing import Any, Dict, Optional

import httpx

from core.control import stoppable_sleep
from logger import logger

from ..errors import ModelError
from .base import BaseVisionModel

# Status codes worth retrying (rate limits and transient upstream failures)
RETRYABLE_STATUS = {429, 500, 502, 503, 504}


class HttpVisionModel(BaseVisionModel):
    """
    Base class for providers called with a JSON POST.

    Parameters (ModelConfig.parameters):
        max_retries: Attempts per request (default 2)
        retry_delay: Base delay in seconds, doubled per attempt (default 2)
        max_tokens / temperature: Sampling options
    """

    default_base_url: str = ""
    MAX_RETRIES = 2
    RETRY_DELAY_SECONDS = 2.0
    CONNECT_TIMEOUT = 10.0

    def __init__(self, client: Optional[httpx.Client] = None):
        super().__init__()
        self._client = client
        self._owns_client = client is None

    def on_initialize(self) -> None:
        self.base_url = self.base_url or self.default_base_url
        if self._client is None:
            self._client = httpx.Client(
                timeout=httpx.Timeout(self.timeout, connect=min(self.CONNECT_TIMEOUT, self.timeout))
            )
            self._owns_client = True

    def on_cleanup(self) -> None:
        if self._client is not None and self._owns_client:
            self._client.close()
            self._client = None

    @property
    def max_retries(self) -> int:
        return max(1, int(self.parameters.get("max_retries", self.MAX_RETRIES)))

    @property
    def retry_delay(self) -> float:
        return float(self.parameters.get("retry_delay", self.RETRY_DELAY_SECONDS))

    def post_json(self, url: str, headers: Dict[str, str], payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        POST a JSON payload and return the decoded JSON body.
        Includes automatic retry logic for timeouts and rate limits.

        Raises:
            ModelError: status_code set for HTTP failures, network=True for
                connection failures and timeouts
        """
        last_error: Optional[ModelError] = None
        name = self.provider.value.upper()

        for attempt in range(1, self.max_retries + 1):
            try:
                response = self._client.post(url, headers=headers, json=payload)
            except httpx.TimeoutException as e:
                last_error = ModelError(
                    f"{self.provider.value} request timed out after {self.timeout}s",
                    code="TIMEOUT",
                    network=True,
                )
                last_error.__cause__ = e
                logger.warning(f"[{name}] Attempt {attempt}/{self.max_retries} timeout: {e}")
            except httpx.HTTPError as e:
                raise ModelError(
                    f"{self.provider.value} request failed: {e}",
                    code="NETWORK_ERROR",
                    network=True,
                ) from e
            else:
                if response.status_code < 400:
                    try:
                        return response.json()
                    except ValueError as e:
                        raise ModelError(
                            f"{self.provider.value} returned a non-JSON body",
                            code="PARSE_ERROR",
                            details={"body": response.text[:300]},
                        ) from e

                last_error = ModelError(
                    f"{self.provider.value} API error: {response.status_code} {response.text[:300]}",
                    code="HTTP_ERROR",
                    status_code=response.status_code,
                )
                if response.status_code not in RETRYABLE_STATUS:
                    raise last_error
                logger.warning(
                    f"[{name}] Attempt {attempt}/{self.max_retries} got {response.status_code}"
                )

            if attempt < self.max_retries:
                # Exponential backoff: 2s, 4s, 8s...
                wait_time = self.retry_delay * (2 ** (attempt - 1))
                logger.info(f"[{name}] Retrying in {wait_time}s...")
                stoppable_sleep(wait_time, self.control)

        logger.error(f"[{name}] All {self.max_retries} attempts failed. Last error: {last_error}")
        raise last_error

    def get_model_info(self) -> Dict[str, Any]:
        info = super().get_model_info()
        info["base_url"] = self.base_url or self.default_base_url
        return info
