# storefront/model.py
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class GenerationPhase(str, Enum):
    IDLE = "idle"
    PREPARING = "preparing"
    QUEUED = "queued"
    GENERATING = "generating"
    FINALIZING = "finalizing"
    COMPLETED = "completed"
    FAILED = "failed"


class GenerationProgress(BaseModel):
    # Replaced wholesale on every update, never mutated.
    model_config = ConfigDict(frozen=True)

    status: GenerationPhase = GenerationPhase.IDLE
    progress: float = Field(default=0, ge=0, le=100)
    message: str = "Ready to generate"
    start_time: Optional[float] = None
    end_time: Optional[float] = None


class GenerationRequestParams(BaseModel):
    prompt: str = Field(min_length=1)
    style: str = ""
    guidance_scale: Optional[float] = None
    num_inference_steps: Optional[int] = None
    image_size: Optional[str] = None
    seed: Optional[int] = None
    negative_prompt: Optional[str] = None
    num_images: Optional[int] = None


class GenerationResult(BaseModel):
    image_url: str
    seed: int
    model_id: str
    metadata: Dict[str, Any] = Field(default_factory=dict)


# ---- HTTP bodies

class GenerateImageRequest(BaseModel):
    prompt: str
    style: str = ""


class GenerateImageResponse(BaseModel):
    imageUrl: str
    seed: int


class GenerationSessionResponse(BaseModel):
    generationId: str
    status: GenerationPhase
    progress: float
    message: str
    elapsed: Optional[float] = None
    imageUrl: Optional[str] = None
    error: Optional[str] = None


class BatchItem(BaseModel):
    prompt: str
    style: str = "realistic"
    category: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    mediumId: Optional[str] = None


class BatchGenerateRequest(BaseModel):
    requests: List[BatchItem] = Field(default_factory=list)
    projectId: Optional[str] = None


class BatchItemResult(BaseModel):
    prompt: str
    success: bool
    designId: Optional[str] = None
    imageUrl: Optional[str] = None
    error: Optional[str] = None


class BatchGenerateResponse(BaseModel):
    success: bool
    projectId: str
    results: List[BatchItemResult]
    totalRequests: int
    successfulRequests: int
    failedRequests: int


class EnhancePromptRequest(BaseModel):
    prompt: str
    style: str = ""
    complexity: int = 50
    productType: str = "wall-art"


class EnhancePromptResponse(BaseModel):
    success: bool
    enhancedPrompt: str
    suggestions: List[str] = Field(default_factory=list)


class MockupRequest(BaseModel):
    productId: Optional[int] = None
    variantId: Optional[int] = None
    imageUrl: Optional[str] = None
    placement: str = "front"
    mockupStyleId: Optional[int] = None


class OrderUpdate(BaseModel):
    status: Optional[str] = None
    shipping_address: Optional[Dict[str, Any]] = None
    payment_intent_id: Optional[str] = None
