# storefront/routes_printful.py

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask

from config.settings import settings

from .deps import get_printful_client
from .errors import AppError, ValidationError
from .model import MockupRequest
from .printful_client import PrintfulClient

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/printful")


def _split(value: Optional[str]):
    return [v for v in value.split(",") if v] if value else None


@router.get("/v2/catalog-products")
async def catalog_products(
    types: Optional[str] = None,
    techniques: Optional[str] = None,
    limit: int = 100,
    offset: int = 0,
    printful: PrintfulClient = Depends(get_printful_client),
):
    products = await printful.catalog_products(_split(types), _split(techniques), limit, offset)
    return {"products": products}


@router.get("/v2/catalog-products/{product_id}")
async def catalog_product(product_id: int, printful: PrintfulClient = Depends(get_printful_client)):
    return {"product": await printful.catalog_product(product_id)}


@router.get("/v2/catalog-products/{product_id}/variants")
async def catalog_variants(product_id: int, printful: PrintfulClient = Depends(get_printful_client)):
    return {"variants": await printful.catalog_variants(product_id)}


@router.get("/v2/catalog-products/{product_id}/mockup-styles")
async def mockup_styles(product_id: int, printful: PrintfulClient = Depends(get_printful_client)):
    return {"mockupStyles": await printful.mockup_styles(product_id)}


@router.get("/v2/catalog-products/{product_id}/mockup-templates")
async def mockup_templates(product_id: int, printful: PrintfulClient = Depends(get_printful_client)):
    return {"mockupTemplates": await printful.mockup_templates(product_id)}


@router.get("/v2/catalog-variants/{variant_id}/prices")
async def variant_prices(variant_id: int, printful: PrintfulClient = Depends(get_printful_client)):
    return {"prices": await printful.variant_prices(variant_id)}


@router.get("/v2/utils/product-colors")
async def product_colors(productId: int, printful: PrintfulClient = Depends(get_printful_client)):
    return {"colors": await printful.product_colors(productId)}


@router.get("/v2/utils/product-sizes")
async def product_sizes(productId: int, printful: PrintfulClient = Depends(get_printful_client)):
    return {"sizes": await printful.product_sizes(productId)}


@router.get("/v2/utils/find-variant")
async def find_variant(
    productId: int,
    color: str,
    size: str,
    printful: PrintfulClient = Depends(get_printful_client),
):
    variant = await printful.find_variant(productId, color, size)
    if variant is None:
        raise AppError("Variant not found", status_code=404)
    return {"variant": variant}


@router.get("/v2/utils/design-friendly-tshirts")
async def design_friendly_tshirts(printful: PrintfulClient = Depends(get_printful_client)):
    return {"products": await printful.design_friendly_tshirts()}


@router.post("/v2/mockups")
async def generate_mockup(req: MockupRequest, printful: PrintfulClient = Depends(get_printful_client)):
    if not req.productId or not req.variantId or not req.imageUrl:
        raise ValidationError("Missing required parameters")

    mockups = await printful.generate_mockup(
        req.productId, req.variantId, req.imageUrl, req.placement or "front", req.mockupStyleId
    )
    return {"mockups": mockups}


@router.get("/proxy/image")
async def proxy_image(
    url: Optional[str] = Query(default=None),
    printful: PrintfulClient = Depends(get_printful_client),
):
    """Stream an image from the fulfillment CDN so the browser can load it same-origin."""
    if not url:
        raise ValidationError("Missing URL parameter")

    upstream, client = await printful.open_cdn_image(url)

    async def close():
        await upstream.aclose()
        await client.aclose()

    return StreamingResponse(
        upstream.aiter_bytes(),
        media_type=upstream.headers.get("content-type", "image/jpeg"),
        headers={"Cache-Control": f"public, max-age={settings.IMAGE_PROXY_MAX_AGE}"},
        background=BackgroundTask(close),
    )
