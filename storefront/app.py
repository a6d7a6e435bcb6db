# storefront/app.py

import logging

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response

from config.settings import settings

from .deps import (
    get_db,
    get_fal_client,
    get_prompt_enhancer,
    get_sessions,
    limit_generation,
)
from .errors import AppError, GenerationExhaustedError, UpstreamError, ValidationError
from .fal_client import TARGET_URL_HEADER, FalClient
from .model import (
    BatchGenerateRequest,
    BatchGenerateResponse,
    BatchItemResult,
    EnhancePromptRequest,
    EnhancePromptResponse,
    GenerateImageRequest,
    GenerateImageResponse,
    GenerationRequestParams,
    GenerationSessionResponse,
)
from .routes_orders import router as orders_router
from .routes_printful import router as printful_router
from .sessions import GenerationSession, GenerationSessions
from .supabase_client import SupabaseClient
from .utils import PromptEnhancer, analyze_prompt, get_timestamp_ms

logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

app = FastAPI(title="AI Art Print Storefront")
app.include_router(printful_router)
app.include_router(orders_router)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    if exc.status_code >= 500:
        logger.error("[App] %s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse({"error": exc.message}, status_code=exc.status_code, headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    details = ", ".join(
        f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
    )
    return JSONResponse({"error": f"Validation error: {details}"}, status_code=400)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("[App] Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse({"error": "Internal server error"}, status_code=500)


@app.get("/health")
async def health(sessions: GenerationSessions = Depends(get_sessions)):
    return {"status": "healthy", "generation_sessions": len(sessions)}


@app.post(
    "/api/generate-image",
    response_model=GenerateImageResponse,
    dependencies=[Depends(limit_generation)],
)
async def generate_image(req: GenerateImageRequest, fal: FalClient = Depends(get_fal_client)):
    if not req.prompt.strip():
        raise ValidationError("Prompt is required")

    try:
        result = await fal.generate(GenerationRequestParams(prompt=req.prompt, style=req.style))
    except GenerationExhaustedError as e:
        logger.error("[App] generate-image failed: %s", e)
        raise UpstreamError("Failed to generate image")

    return GenerateImageResponse(imageUrl=result.image_url, seed=result.seed)


# ---- generation sessions (progress tracker over HTTP)

def _session_response(session: GenerationSession) -> GenerationSessionResponse:
    tracker = session.tracker
    progress = tracker.progress
    return GenerationSessionResponse(
        generationId=session.generation_id,
        status=progress.status,
        progress=progress.progress,
        message=progress.message,
        elapsed=tracker.elapsed,
        imageUrl=tracker.image_url,
        error=str(tracker.error) if tracker.error else None,
    )


@app.post(
    "/api/generations",
    response_model=GenerationSessionResponse,
    dependencies=[Depends(limit_generation)],
)
async def start_generation(req: GenerateImageRequest, sessions: GenerationSessions = Depends(get_sessions)):
    session = sessions.create(req.prompt, req.style)
    return _session_response(session)


@app.get("/api/generations/{generation_id}", response_model=GenerationSessionResponse)
async def get_generation(generation_id: str, sessions: GenerationSessions = Depends(get_sessions)):
    return _session_response(sessions.get(generation_id))


@app.delete("/api/generations/{generation_id}", response_model=GenerationSessionResponse)
async def cancel_generation(generation_id: str, sessions: GenerationSessions = Depends(get_sessions)):
    return _session_response(sessions.cancel(generation_id))


@app.post(
    "/api/generations/{generation_id}/retry",
    response_model=GenerationSessionResponse,
    dependencies=[Depends(limit_generation)],
)
async def retry_generation(generation_id: str, sessions: GenerationSessions = Depends(get_sessions)):
    return _session_response(sessions.retry(generation_id))


# ---- image provider

@app.post("/api/fal/batch-generate", response_model=BatchGenerateResponse)
async def batch_generate(
    req: BatchGenerateRequest,
    fal: FalClient = Depends(get_fal_client),
    db: SupabaseClient = Depends(get_db),
):
    """
    Generate and store one design per request, one at a time. A failing
    item is reported in the results and never aborts the batch.
    """
    if not req.requests:
        raise ValidationError("Invalid requests array")

    logger.info("[Batch] Starting batch generation of %d images", len(req.requests))

    project_id = req.projectId
    if not project_id:
        try:
            project = await db.insert(
                "projects",
                {
                    "name": "Initial Artwork Collection",
                    "description": "Auto-generated artwork collection for the website",
                    "user_id": "system",
                    "is_public": True,
                },
                columns="id",
            )
        except AppError as e:
            logger.error("[Batch] Error creating project: %s", e.message)
            raise AppError("Failed to create project", status_code=500)
        project_id = project["id"]
        logger.info("[Batch] Created project %s", project_id)

    results = []
    for i, item in enumerate(req.requests):
        if i > 0:
            await fal.pause()
        try:
            generated = await fal.generate(GenerationRequestParams(prompt=item.prompt, style=item.style))
            design = await db.insert(
                "designs",
                {
                    "project_id": project_id,
                    "name": item.prompt[:50],
                    "prompt": item.prompt,
                    "image_url": generated.image_url,
                    "status": "completed",
                    "metadata": {
                        "style": item.style,
                        "category": item.category,
                        "tags": item.tags,
                        "mediumId": item.mediumId,
                        "generatedAt": get_timestamp_ms(),
                        "generationParams": {
                            "model": generated.model_id,
                            "seed": generated.seed,
                            "image_size": generated.metadata["params"]["image_size"],
                        },
                    },
                },
                columns="id, image_url",
            )
        except (GenerationExhaustedError, AppError, ValueError) as e:
            message = e.message if isinstance(e, AppError) else str(e)
            logger.error("[Batch] Error processing prompt %r: %s", item.prompt[:50], message)
            results.append(BatchItemResult(prompt=item.prompt, success=False, error=message))
            continue

        results.append(
            BatchItemResult(
                prompt=item.prompt,
                success=True,
                designId=str(design["id"]),
                imageUrl=design["image_url"],
            )
        )

    succeeded = sum(1 for r in results if r.success)
    return BatchGenerateResponse(
        success=True,
        projectId=str(project_id),
        results=results,
        totalRequests=len(req.requests),
        successfulRequests=succeeded,
        failedRequests=len(results) - succeeded,
    )


@app.post("/api/fal/proxy")
async def fal_proxy(request: Request, fal: FalClient = Depends(get_fal_client)):
    target_url = request.headers.get(TARGET_URL_HEADER)
    if not target_url:
        raise ValidationError(f"Missing {TARGET_URL_HEADER} header")

    upstream = await fal.forward(target_url, await request.body())
    headers = {
        k: v for k, v in upstream.headers.items() if k.lower() in ("x-fal-request-id", "x-request-id")
    }
    return Response(
        content=upstream.content,
        status_code=upstream.status_code,
        media_type=upstream.headers.get("content-type", "application/json"),
        headers=headers,
    )


@app.post("/api/enhance-prompt", response_model=EnhancePromptResponse)
async def enhance_prompt(req: EnhancePromptRequest, enhancer: PromptEnhancer = Depends(get_prompt_enhancer)):
    if not req.prompt.strip():
        raise ValidationError("Prompt is required")

    enhanced = await enhancer.enhance(req.prompt, req.style, req.complexity, req.productType)
    return EnhancePromptResponse(success=True, enhancedPrompt=enhanced, suggestions=analyze_prompt(req.prompt))
