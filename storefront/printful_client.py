import asyncio
import json
import logging
from typing import Any, Dict, List, Optional, Tuple

import httpx
from cachetools import TTLCache

from config.settings import settings

from .errors import AppError, PrintfulApiError, ValidationError
from .retry import Sleep

logger = logging.getLogger(__name__)


def _first(data: Any) -> Dict[str, Any]:
    # Task endpoints answer with a single task or a one-element list.
    if isinstance(data, list):
        return data[0] if data else {}
    return data


class PrintfulClient:
    """
    Client for the print-on-demand catalog and mockup API (v2).

    Catalog reads are cached in-process for ``cache_ttl`` seconds. Mockups are
    generated asynchronously upstream: a task is created, then polled until it
    leaves the ``pending`` state.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        cache_ttl: Optional[float] = None,
        poll_interval: Optional[float] = None,
        max_polls: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.base_url = (base_url or settings.PRINTFUL_API_URL).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.PRINTFUL_API_KEY
        self.poll_interval = poll_interval if poll_interval is not None else settings.MOCKUP_POLL_INTERVAL
        self.max_polls = max_polls if max_polls is not None else settings.MOCKUP_MAX_POLLS
        self._transport = transport
        self._sleep = sleep
        self._cache: TTLCache[str, Any] = TTLCache(
            maxsize=512, ttl=cache_ttl if cache_ttl is not None else settings.CATALOG_CACHE_TTL
        )

    async def _call(self, method: str, endpoint: str, **kwargs) -> Any:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        async with httpx.AsyncClient(
            base_url=self.base_url, timeout=30, transport=self._transport
        ) as client:
            r = await client.request(method, endpoint, headers=headers, **kwargs)

        if not r.is_success:
            try:
                error = r.json()
            except ValueError:
                error = {}
            if not isinstance(error, dict):
                error = {}
            if isinstance(error.get("error"), dict):
                error = error["error"]
            logger.error("[Printful] %s %s -> %s: %s", method, endpoint, r.status_code, r.text[:300])
            raise PrintfulApiError(
                error.get("message") or "Unknown Printful API error",
                r.status_code,
                str(error.get("code") or "unknown"),
            )

        data = r.json()
        if isinstance(data, dict) and "result" in data:
            return data["result"]
        if isinstance(data, dict) and "data" in data:
            return data["data"]
        return data

    async def _cached(self, cache_key: str, endpoint: str, **kwargs) -> Any:
        if cache_key in self._cache:
            return self._cache[cache_key]
        data = await self._call("GET", endpoint, **kwargs)
        self._cache[cache_key] = data
        return data

    # ---- catalog

    async def catalog_products(
        self,
        types: Optional[List[str]] = None,
        techniques: Optional[List[str]] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[Dict[str, Any]]:
        params: Dict[str, Any] = {"limit": limit, "offset": offset}
        if types:
            params["types"] = ",".join(types)
        if techniques:
            params["techniques"] = ",".join(techniques)
        cache_key = "catalog_products_" + json.dumps(params, sort_keys=True)
        return await self._cached(cache_key, "/catalog-products", params=params)

    async def design_friendly_tshirts(self) -> List[Dict[str, Any]]:
        return await self.catalog_products(types=["T-SHIRT"], techniques=["dtg"])

    async def catalog_product(self, product_id: int) -> Dict[str, Any]:
        return await self._cached(f"catalog_product_{product_id}", f"/catalog-products/{product_id}")

    async def catalog_variants(self, product_id: int) -> List[Dict[str, Any]]:
        return await self._cached(
            f"catalog_variants_{product_id}", f"/catalog-products/{product_id}/catalog-variants"
        )

    async def variant_prices(self, variant_id: int) -> Any:
        return await self._cached(f"variant_prices_{variant_id}", f"/catalog-variants/{variant_id}/prices")

    async def mockup_styles(self, product_id: int) -> List[Dict[str, Any]]:
        return await self._cached(f"mockup_styles_{product_id}", f"/catalog-products/{product_id}/mockup-styles")

    async def mockup_templates(self, product_id: int) -> List[Dict[str, Any]]:
        return await self._cached(
            f"mockup_templates_{product_id}", f"/catalog-products/{product_id}/mockup-templates"
        )

    async def product_colors(self, product_id: int) -> List[Dict[str, str]]:
        colors: Dict[str, Dict[str, str]] = {}
        for variant in await self.catalog_variants(product_id):
            code = variant.get("color_code")
            if code not in colors:
                colors[code] = {"name": variant.get("color"), "code": code}
        return list(colors.values())

    async def product_sizes(self, product_id: int) -> List[str]:
        sizes: List[str] = []
        for variant in await self.catalog_variants(product_id):
            if variant.get("size") not in sizes:
                sizes.append(variant.get("size"))
        return sizes

    async def find_variant(self, product_id: int, color: str, size: str) -> Optional[Dict[str, Any]]:
        for variant in await self.catalog_variants(product_id):
            if (
                str(variant.get("color", "")).lower() == color.lower()
                and str(variant.get("size", "")).lower() == size.lower()
            ):
                return variant
        return None

    # ---- CDN

    async def open_cdn_image(self, url: str) -> Tuple[httpx.Response, httpx.AsyncClient]:
        """
        Start streaming an image from the fulfillment CDN. The caller owns
        both returned objects and must close them.
        """
        if not url.startswith(settings.PRINTFUL_CDN_PREFIX):
            raise ValidationError("Only Printful CDN URLs are allowed")

        client = httpx.AsyncClient(timeout=30, transport=self._transport)
        try:
            r = await client.send(client.build_request("GET", url), stream=True)
        except httpx.HTTPError:
            await client.aclose()
            raise

        if not r.is_success:
            await r.aclose()
            await client.aclose()
            raise AppError(f"Failed to fetch image: {r.reason_phrase}", status_code=r.status_code)
        return r, client

    # ---- mockups

    async def create_mockup_task(
        self,
        product_id: int,
        variant_id: int,
        image_url: str,
        placement: str = "front",
        mockup_style_id: Optional[int] = None,
    ) -> Dict[str, Any]:
        product: Dict[str, Any] = {
            "source": "catalog",
            "catalog_product_id": product_id,
            "catalog_variant_ids": [variant_id],
            "placements": [
                {
                    "placement": placement,
                    "technique": "dtg",
                    "layers": [{"type": "file", "url": image_url}],
                }
            ],
        }
        if mockup_style_id:
            product["mockup_style_ids"] = [mockup_style_id]

        payload = {"format": "jpg", "products": [product]}
        return _first(await self._call("POST", "/mockup-tasks", json=payload))

    async def get_mockup_task(self, task_id: str) -> Dict[str, Any]:
        return _first(await self._call("GET", "/mockup-tasks", params={"id": task_id}))

    async def generate_mockup(
        self,
        product_id: int,
        variant_id: int,
        image_url: str,
        placement: str = "front",
        mockup_style_id: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Create a mockup task and poll until it is no longer pending."""
        task = await self.create_mockup_task(product_id, variant_id, image_url, placement, mockup_style_id)
        task_id = task.get("task_id") or task.get("id")
        logger.info("[Printful] Mockup task %s: %s", task_id, task.get("status"))

        polls = 0
        while task.get("status") == "pending" and polls < self.max_polls:
            await self._sleep(self.poll_interval)
            task = await self.get_mockup_task(task_id)
            polls += 1
            logger.info("[Printful] Polling mockup task %s (%d): %s", task_id, polls, task.get("status"))

        if task.get("status") == "failed":
            raise PrintfulApiError(f"Mockup task {task_id} failed", 502, "mockup_failed")
        if task.get("status") == "pending":
            logger.warning("[Printful] Mockup task %s still pending after %d polls, giving up", task_id, polls)
        return task.get("mockups") or []
