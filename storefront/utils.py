import asyncio
import logging
import random
import time
import uuid
from typing import Dict, List, Optional

import aiohttp

logger = logging.getLogger(__name__)


STYLE_KEYWORDS: Dict[str, List[str]] = {
    "minimalist": [
        "clean lines", "simple composition", "negative space", "limited color palette",
        "geometric", "uncluttered", "elegant", "modern", "subtle", "refined",
    ],
    "abstract": [
        "non-representational", "geometric shapes", "bold colors", "expressive",
        "dynamic", "emotional", "vibrant", "textured", "fluid", "energetic",
    ],
    "landscape": [
        "scenic view", "horizon", "natural elements", "atmospheric", "panoramic",
        "serene", "expansive", "detailed", "realistic", "environmental",
    ],
    "retro": [
        "vintage", "nostalgic", "old-school", "classic", "throwback",
        "mid-century", "retro-futuristic", "analog", "distressed", "aged",
    ],
    "space": [
        "cosmic", "galactic", "stellar", "nebula", "astronomical",
        "interstellar", "planetary", "celestial", "sci-fi", "otherworldly",
    ],
    "neon": [
        "glowing", "vibrant", "fluorescent", "bright", "luminous",
        "electric", "cyberpunk", "synthwave", "vaporwave", "high-contrast",
    ],
}

PRODUCT_KEYWORDS: Dict[str, List[str]] = {
    "wall-art": [
        "high quality art print", "home decor", "wall hanging", "framed artwork",
        "gallery quality", "fine art", "decorative", "statement piece", "wall display",
    ],
    "t-shirt": [
        "wearable art", "graphic tee", "apparel design", "screen print style",
        "fashion forward", "trendy", "casual wear", "clothing graphic", "textile design",
    ],
    "poster": [
        "bold typography", "visual impact", "promotional", "eye-catching",
        "large format", "advertising", "announcement", "informative", "striking",
    ],
}

VAGUE_TERMS = ["nice", "good", "cool", "awesome", "great"]
COLOR_TERMS = [
    "red", "blue", "green", "yellow", "orange", "purple", "pink",
    "black", "white", "gray", "brown", "teal", "cyan", "magenta",
    "gold", "silver", "bronze", "colorful", "monochrome",
]


class PromptEnhancer:
    """
    Rewrites a user prompt into a richer one for the image model using an
    OpenAI-compatible chat endpoint. Falls back to keyword enrichment if the
    LLM is unavailable or answers with nothing usable.
    """

    def __init__(
        self,
        base_url: str = "https://api.openai.com/v1",
        model: str = "gpt-4o",
        api_key: Optional[str] = None,
        request_timeout: float = 10.0,
        rng: Optional[random.Random] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.api_key = api_key
        self.request_timeout = request_timeout
        self._rng = rng or random.Random()

    async def enhance(
        self,
        prompt: str,
        style: str = "",
        complexity: int = 50,
        product_type: str = "wall-art",
    ) -> str:
        if not self.api_key:
            return self.fallback_enhance(prompt, style, product_type)

        instruction = f"""
Enhance this wall art prompt for an AI image generator: "{prompt.strip()}"

Style: {style or "Any"}
Complexity level: {complexity}/100

Make it more detailed, descriptive, and specific. Add artistic elements, color details,
and composition suggestions. The result should be a single, cohesive prompt that would
create a beautiful wall art piece. Do not include explanations or metadata, just the enhanced prompt.
        """.strip()

        url = f"{self.base_url}/chat/completions"
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }
        payload = {
            "model": self.model,
            "messages": [{"role": "user", "content": instruction}],
        }

        try:
            timeout = aiohttp.ClientTimeout(total=self.request_timeout)
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(url, headers=headers, json=payload) as resp:
                    if resp.status != 200:
                        body_text = await resp.text()
                        logger.warning(
                            "[PromptEnhancer] HTTP %s from %s: %s", resp.status, url, body_text[:300]
                        )
                        resp.raise_for_status()
                    body = await resp.json()
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.warning("[PromptEnhancer] Error calling LLM: %s", e)
            return self.fallback_enhance(prompt, style, product_type)

        choices = (body or {}).get("choices") or []
        text = ((choices[0].get("message") or {}).get("content") or "") if choices else ""
        text = text.strip().strip('"').strip()
        if not text:
            logger.warning("[PromptEnhancer] Empty completion, using fallback")
            return self.fallback_enhance(prompt, style, product_type)
        return text

    def fallback_enhance(self, prompt: str, style: str, product_type: str) -> str:
        style_words = STYLE_KEYWORDS.get(style.lower(), [])
        product_words = PRODUCT_KEYWORDS.get(product_type.lower(), [])
        keywords = self._pick(style_words, 3) + self._pick(product_words, 2)

        enhanced = prompt.strip()
        if style and style.lower() not in prompt.lower():
            enhanced += f", {style} style"
        if keywords:
            enhanced += ", " + ", ".join(keywords)
        enhanced += ", high quality, detailed, professional"
        return enhanced

    def _pick(self, words: List[str], count: int) -> List[str]:
        if count >= len(words):
            return list(words)
        return self._rng.sample(words, count)


def analyze_prompt(prompt: str) -> List[str]:
    """Suggest improvements for a prompt."""
    p = prompt.lower()
    suggestions = []
    if len(prompt) < 10:
        suggestions.append("Consider adding more details to your prompt for better results.")
    for term in VAGUE_TERMS:
        if term in p:
            suggestions.append(f'Replace "{term}" with more specific descriptors.')
    if not any(color in p for color in COLOR_TERMS):
        suggestions.append("Consider specifying colors for more control over the result.")
    return suggestions


def gen_generation_id() -> str:
    return f"gen_{uuid.uuid4().hex[:16]}"


def get_timestamp_ms() -> int:
    return int(time.time() * 1000)
