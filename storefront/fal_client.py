import asyncio
import logging
from typing import Any, Dict, List, Optional, Tuple

import httpx

from config.settings import settings

from .errors import EmptyResultError, GenerationExhaustedError, HttpError, ValidationError
from .model import GenerationRequestParams, GenerationResult
from .payload_builder import build_generation_payload, build_upscale_payload
from .retry import Sleep, retry_with_backoff, with_timeout

logger = logging.getLogger(__name__)

TARGET_URL_HEADER = "x-fal-target-url"
REQUEST_ID_HEADERS = ("x-fal-request-id", "x-request-id")


class FalClient:
    """
    Thin wrapper around the image-generation provider.

    Holds configuration only, so a single instance can be shared by
    concurrent callers. Every attempt is bounded by ``timeout`` seconds and
    failed attempts are retried with exponential backoff.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        proxy_url: Optional[str] = None,
        model_id: Optional[str] = None,
        upscale_model_id: Optional[str] = None,
        timeout: Optional[float] = None,
        batch_pause: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.base_url = (base_url or settings.FAL_BASE_URL).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.FAL_KEY
        self.proxy_url = proxy_url if proxy_url is not None else settings.FAL_PROXY_URL
        self.model_id = model_id or settings.FAL_MODEL_ID
        self.upscale_model_id = upscale_model_id or settings.FAL_UPSCALE_MODEL_ID
        self.timeout = timeout if timeout is not None else settings.GENERATION_TIMEOUT
        self.batch_pause = batch_pause if batch_pause is not None else settings.BATCH_PAUSE
        self._transport = transport
        self._sleep = sleep

    async def pause(self) -> None:
        """Wait out the gap kept between successive batch calls."""
        await self._sleep(self.batch_pause)

    async def _post(self, model_path: str, payload: Dict[str, Any]) -> Tuple[Dict[str, Any], str]:
        """
        POST the payload to ``{base_url}/{model_path}``, either directly with
        the server key or through the same-origin proxy with the target URL
        in a header. Returns (json body, request id).
        """
        target_url = f"{self.base_url}/{model_path}"
        headers = {"Content-Type": "application/json"}

        if self.proxy_url:
            url = self.proxy_url
            headers[TARGET_URL_HEADER] = target_url
        else:
            url = target_url
            if self.api_key:
                headers["Authorization"] = f"Key {self.api_key}"

        # Transport timeout is a backstop; the per-attempt deadline is with_timeout.
        async with httpx.AsyncClient(timeout=self.timeout + 5, transport=self._transport) as client:
            r = await client.post(url, json=payload, headers=headers)

        if not r.is_success:
            logger.error("[FalClient] %s returned %s: %s", model_path, r.status_code, r.text[:300])
            raise HttpError(r.status_code, r.text)

        request_id = next(
            (r.headers[h] for h in REQUEST_ID_HEADERS if h in r.headers), "unknown"
        )
        return r.json(), request_id

    async def forward(self, target_url: str, body: bytes) -> httpx.Response:
        """
        Proxy side of the same-origin route: send ``body`` to ``target_url``
        with the server key attached and hand back the raw response.
        """
        host = httpx.URL(target_url).host
        if not any(host == h or host.endswith("." + h) for h in settings.FAL_ALLOWED_HOSTS):
            raise ValidationError(f"Target host not allowed: {host}")

        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Key {self.api_key}"

        async with httpx.AsyncClient(timeout=self.timeout + 5, transport=self._transport) as client:
            r = await client.post(target_url, content=body, headers=headers)
        logger.info("[FalClient] Proxied %s -> %s", target_url, r.status_code)
        return r

    async def generate(self, params: GenerationRequestParams, max_retries: int = 2) -> GenerationResult:
        # One payload for all attempts so the seed stays stable across retries.
        payload = build_generation_payload(params)
        logger.info("[FalClient] Generating with %s, seed=%s", self.model_id, payload["seed"])

        async def attempt() -> GenerationResult:
            data, request_id = await with_timeout(self._post(self.model_id, payload), self.timeout)
            images = data.get("images") or []
            if not images:
                raise EmptyResultError()
            image_url = images[0].get("url")
            if not image_url:
                raise EmptyResultError("Upstream image has no url")

            seed = data.get("seed")
            return GenerationResult(
                image_url=image_url,
                seed=seed if seed is not None else payload["seed"],
                model_id=self.model_id,
                metadata={"request_id": request_id, "params": payload},
            )

        result = await retry_with_backoff(
            attempt, max_retries, label=f"generate({self.model_id})", sleep=self._sleep
        )
        logger.info("[FalClient] Got image %s", result.image_url)
        return result

    async def upscale(self, image_url: str, scale: int = 2, max_retries: int = 2) -> str:
        """
        Upscale an image. Falls back to the original ``image_url`` once all
        attempts are used up, so callers never see an error from here.
        """
        payload = build_upscale_payload(image_url, scale)

        async def attempt() -> str:
            data, _ = await with_timeout(self._post(self.upscale_model_id, payload), self.timeout)
            upscaled = (data.get("image") or {}).get("url")
            if not upscaled:
                raise EmptyResultError("Upscaler returned no image")
            return upscaled

        try:
            return await retry_with_backoff(
                attempt, max_retries, label=f"upscale({self.upscale_model_id})", sleep=self._sleep
            )
        except GenerationExhaustedError as e:
            logger.warning("[FalClient] Upscale failed, keeping original image: %s", e)
            return image_url

    async def batch_generate(
        self,
        prompts: List[str],
        params: Optional[GenerationRequestParams] = None,
    ) -> List[GenerationResult]:
        """
        Generate one image per prompt, one at a time with a fixed pause
        between calls. Prompts that fail are logged and skipped.
        """
        shared = params.model_dump(exclude={"prompt"}) if params is not None else {}
        results: List[GenerationResult] = []

        for i, prompt in enumerate(prompts):
            if i > 0:
                await self.pause()
            try:
                item = GenerationRequestParams(prompt=prompt, **shared)
                results.append(await self.generate(item))
            except (GenerationExhaustedError, ValueError) as e:
                logger.error("[FalClient] Skipping prompt %r: %s", prompt[:50], e)

        logger.info("[FalClient] Batch finished: %d/%d succeeded", len(results), len(prompts))
        return results
