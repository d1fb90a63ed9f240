"""
Replicate API Adapter

Runs an image restoration model through the Replicate HTTP API.
"""
import asyncio
import base64
import logging
import time
from typing import Any, Optional

import httpx

from .restoration_base import ImagePayload, RestorationError, RestorationResult, RestorationService
from ..config import settings

logger = logging.getLogger("uvicorn.error")

TERMINAL_STATES = ("succeeded", "failed", "canceled")


class ReplicateRestorationService(RestorationService):
    """Replicate-hosted restoration model (official model predictions endpoint)"""

    def __init__(self, model_id: str, poll_interval: float = 1.0):
        self.model_id = model_id
        self.api_token = settings.replicate_api_token
        self.api_url = settings.replicate_api_url.rstrip("/")
        self.poll_interval = poll_interval

    @property
    def name(self) -> str:
        return self.model_id

    def is_available(self) -> bool:
        """Check if API token is configured"""
        return bool(self.api_token)

    async def restore(self, image: ImagePayload) -> RestorationResult:
        """
        Create a prediction and wait for it to finish.

        Uses `Prefer: wait` so short jobs complete in the create call; longer
        ones are polled through the prediction's `urls.get` link. The caller
        is responsible for bounding the total time.
        """
        if not self.is_available():
            raise RestorationError(f"{self.name}: API token not configured", self.name)

        started = time.monotonic()
        headers = {
            "Authorization": f"Bearer {self.api_token}",
            "Prefer": "wait",
        }
        data_uri = f"data:{image.content_type};base64," + base64.b64encode(image.data).decode("ascii")
        body = {
            "input": {
                "input_image": data_uri,
                "safety_tolerance": 2,
            }
        }

        logger.info("[replicate] %s: starting (%dKB)", self.name, round(image.size / 1024))
        try:
            async with httpx.AsyncClient(timeout=120) as client:
                resp = await client.post(
                    f"{self.api_url}/models/{self.model_id}/predictions",
                    headers=headers,
                    json=body,
                )
                prediction = self._parse(resp)
                while prediction.get("status") not in TERMINAL_STATES:
                    poll_url = (prediction.get("urls") or {}).get("get")
                    if not poll_url:
                        raise RestorationError(f"{self.name}: prediction has no status URL", self.name)
                    await asyncio.sleep(self.poll_interval)
                    prediction = self._parse(await client.get(poll_url, headers=headers))
        except httpx.TimeoutException as e:
            raise RestorationError(f"{self.name}: request timed out", self.name) from e
        except httpx.HTTPError as e:
            raise RestorationError(f"{self.name}: service unavailable ({e})", self.name) from e

        if prediction.get("status") != "succeeded":
            error = prediction.get("error") or prediction.get("status")
            raise RestorationError(f"{self.name}: prediction {prediction.get('status')}: {error}", self.name)

        result_url = self._output_url(prediction.get("output"))
        if not result_url:
            raise RestorationError(f"{self.name}: prediction returned no output", self.name)

        elapsed_ms = int((time.monotonic() - started) * 1000)
        logger.info("[replicate] %s: completed in %dms", self.name, elapsed_ms)
        return RestorationResult(result_url=result_url, elapsed_ms=elapsed_ms, model_id=self.name)

    def _parse(self, resp: httpx.Response) -> dict[str, Any]:
        """Map HTTP failures to messages the failure classifier understands"""
        if resp.status_code == 429:
            raise RestorationError(f"{self.name}: rate limit exceeded", self.name)
        if resp.status_code == 402:
            raise RestorationError(f"{self.name}: account quota exceeded", self.name)
        if resp.status_code in (400, 422):
            raise RestorationError(f"{self.name}: invalid input: {self._detail(resp)}", self.name)
        if resp.status_code >= 500:
            raise RestorationError(f"{self.name}: service unavailable (HTTP {resp.status_code})", self.name)
        if resp.status_code >= 400:
            raise RestorationError(f"{self.name}: upstream error (HTTP {resp.status_code})", self.name)
        return resp.json()

    @staticmethod
    def _detail(resp: httpx.Response) -> str:
        try:
            return str(resp.json().get("detail", resp.text))
        except ValueError:
            return resp.text

    @staticmethod
    def _output_url(output: Any) -> Optional[str]:
        if isinstance(output, str):
            return output
        if isinstance(output, list) and output:
            return str(output[0])
        return None
