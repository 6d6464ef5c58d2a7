from .gemini import ContentPart, GeminiImageClient, GenerationError, ImageModelClient, first_image_part
from .generation import (
    GenerationOutcome,
    JobStateError,
    dispatch_generation,
    run_generation,
    start_generation_in_thread,
)
from .prompts import create_image_prompt
from .references import collect_reference_parts, fetch_image, resolve_url
from .storage import LocalAssetStorage

__all__ = [
    "ContentPart",
    "GeminiImageClient",
    "GenerationError",
    "ImageModelClient",
    "first_image_part",
    "GenerationOutcome",
    "JobStateError",
    "dispatch_generation",
    "run_generation",
    "start_generation_in_thread",
    "create_image_prompt",
    "collect_reference_parts",
    "fetch_image",
    "resolve_url",
    "LocalAssetStorage",
]
