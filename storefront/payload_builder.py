# storefront/payload_builder.py

import random
from typing import Any, Dict

from .model import GenerationRequestParams


DEFAULT_IMAGE_SIZE = "landscape_4_3"
DEFAULT_INFERENCE_STEPS = 40
DEFAULT_GUIDANCE_SCALE = 7.5
DEFAULT_NUM_IMAGES = 1
DEFAULT_STYLE = "realistic"
DEFAULT_NEGATIVE_PROMPT = (
    "low quality, blurry, blurred, distorted, deformed, pixelated, "
    "watermark, signature, text, jpeg artifacts"
)
MAX_SEED = 1_000_000


def random_seed() -> int:
    return random.randrange(MAX_SEED)


def build_prompt(prompt: str, style: str) -> str:
    """
    Append the style modifier the way the storefront always has:
    "<prompt>. Style: <style>"
    """
    return f"{prompt.strip()}. Style: {(style or DEFAULT_STYLE).strip()}"


def build_generation_payload(params: GenerationRequestParams) -> Dict[str, Any]:
    """
    Merge caller params with the defaults.
    The seed is drawn here when the caller gave none, so the payload always
    names the seed that was actually requested.
    """
    return {
        "prompt": build_prompt(params.prompt, params.style),
        "seed": params.seed if params.seed is not None else random_seed(),
        "image_size": params.image_size or DEFAULT_IMAGE_SIZE,
        "num_images": params.num_images or DEFAULT_NUM_IMAGES,
        "guidance_scale": (
            params.guidance_scale if params.guidance_scale is not None else DEFAULT_GUIDANCE_SCALE
        ),
        "num_inference_steps": params.num_inference_steps or DEFAULT_INFERENCE_STEPS,
        "negative_prompt": (
            params.negative_prompt if params.negative_prompt is not None else DEFAULT_NEGATIVE_PROMPT
        ),
    }


def build_upscale_payload(image_url: str, scale: int = 2) -> Dict[str, Any]:
    return {"image_url": image_url, "scale": scale}
