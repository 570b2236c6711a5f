"""
HTTP client for the OpenAI Images edit endpoint.

Talks to `POST {base_url}/images/edits` directly via requests with a multipart
body. Each call is a single attempt: failures are raised as `ProviderError`
with the provider's status code and response body, never retried here.

All calls go through the shared provider rate limiter when one is configured.
"""

import base64
import binascii
import logging
from typing import Optional

import requests

from portrait_sheet.core.config import Settings, mask_secret
from portrait_sheet.errors import ProviderError
from portrait_sheet.services.rate_limiter import ProviderRateLimiter

logger = logging.getLogger(__name__)

# Longest slice of a provider response body kept in error messages.
MAX_ERROR_BODY = 2000


class OpenAIImagesClient:
    """Minimal client for image edits, returning raw image bytes."""

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-image-1.5",
        base_url: str = "https://api.openai.com/v1",
        timeout: Optional[float] = None,
        rate_limiter: Optional[ProviderRateLimiter] = None,
        acquire_timeout: Optional[float] = 600.0,
        session: Optional[requests.Session] = None,
    ):
        """
        Args:
            api_key: Provider credential, sent as a bearer token.
            model: Image model used for edits.
            base_url: API root without trailing slash.
            timeout: Per-request timeout in seconds; None waits indefinitely.
            rate_limiter: Shared limiter consulted before every request.
            acquire_timeout: Max seconds to wait for a limiter token.
            session: Optional requests session (tests inject a mock).
        """
        if not api_key:
            raise ValueError("api_key is required")
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.rate_limiter = rate_limiter
        self.acquire_timeout = acquire_timeout
        self.session = session or requests.Session()
        logger.info(
            "OpenAI images client ready (model: %s, key: %s, timeout: %s)",
            model,
            mask_secret(api_key),
            "none" if timeout is None else f"{timeout}s",
        )

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        rate_limiter: Optional[ProviderRateLimiter] = None,
    ) -> "OpenAIImagesClient":
        return cls(
            api_key=settings.require_api_key(),
            model=settings.openai_image_model,
            base_url=settings.openai_base_url,
            timeout=settings.provider_timeout_seconds,
            rate_limiter=rate_limiter,
            acquire_timeout=settings.provider_acquire_timeout_seconds,
        )

    @property
    def edits_url(self) -> str:
        return f"{self.base_url}/images/edits"

    def edit(
        self,
        image: bytes,
        prompt: str,
        input_fidelity: str = "high",
        output_format: str = "png",
    ) -> bytes:
        """
        Request an edited version of `image` following `prompt`.

        Returns:
            Raw bytes of the first returned image.

        Raises:
            ProviderError: the call failed or returned no usable image.
        """
        if self.rate_limiter is not None and not self.rate_limiter.acquire(timeout=self.acquire_timeout):
            raise ProviderError(
                f"Rate limiter timeout: no provider slot within {self.acquire_timeout}s",
            )

        files = {"image": ("base.png", image, "image/png")}
        data = {
            "model": self.model,
            "prompt": prompt,
            "input_fidelity": input_fidelity,
            "output_format": output_format,
        }
        headers = {"Authorization": f"Bearer {self.api_key}"}

        logger.info("Calling images edit API (model: %s, input: %d bytes)", self.model, len(image))
        try:
            response = self.session.post(
                self.edits_url,
                headers=headers,
                data=data,
                files=files,
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as exc:
            raise ProviderError(f"Images edit request failed: {exc}", body=str(exc)) from exc

        if not response.ok:
            body = response.text[:MAX_ERROR_BODY]
            if response.status_code == 429 and self.rate_limiter is not None:
                self.rate_limiter.report_429()
            logger.error("Images edit failed with status %d", response.status_code)
            raise ProviderError(
                f"Images edit failed {response.status_code}: {body}",
                status_code=response.status_code,
                body=body,
            )

        if self.rate_limiter is not None:
            self.rate_limiter.report_success()
        return self._extract_image(response)

    def _extract_image(self, response: requests.Response) -> bytes:
        body = response.text[:MAX_ERROR_BODY]
        try:
            payload = response.json()
        except ValueError as exc:
            raise ProviderError(
                "Images edit returned a non-JSON response",
                status_code=response.status_code,
                body=body,
            ) from exc

        items = payload.get("data") if isinstance(payload, dict) else None
        first = items[0] if isinstance(items, list) and items else None
        b64 = first.get("b64_json") if isinstance(first, dict) else None
        if not b64:
            raise ProviderError(
                "No image returned from API",
                status_code=response.status_code,
                body=body,
            )

        try:
            return base64.b64decode(b64, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ProviderError(
                "Images edit returned an undecodable image payload",
                status_code=response.status_code,
                body=body,
            ) from exc
