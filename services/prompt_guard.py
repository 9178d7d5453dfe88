import re
from typing import Any, Optional

from db.config import Settings, settings as default_settings
from schemas.generation import ASPECT_RATIOS, RelayRequest
from services.errors import AuthError, ValidationFailed

API_KEY_RE = re.compile(r"^sk-[a-zA-Z0-9]{48}$")

# Credentials, card numbers and e-mail addresses must never reach the backend
PROHIBITED_PATTERNS = [
    re.compile(r"password", re.IGNORECASE),
    re.compile(r"api[-_]?key", re.IGNORECASE),
    re.compile(r"secret", re.IGNORECASE),
    re.compile(r"token", re.IGNORECASE),
    re.compile(r"\b\d{4}[-\s]?\d{4}[-\s]?\d{4}[-\s]?\d{4}\b"),
    re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}"),
]

RESOLUTIONS = {"720p", "1080p", "4K"}
FPS_VALUES = {24, 30, 60}


def validate_api_key(api_key: Optional[str]) -> str:
    if not api_key:
        raise AuthError("API key is required")
    if not API_KEY_RE.match(api_key):
        raise AuthError("Invalid API key format")
    return api_key


def sanitize_prompt(prompt: Any, *, min_chars: int, max_chars: int) -> str:
    if not prompt or not isinstance(prompt, str):
        raise ValidationFailed("Prompt is required and must be a string")

    cleaned = prompt.strip()[:max_chars]
    if len(cleaned) < min_chars:
        raise ValidationFailed(f"Prompt must be at least {min_chars} characters long")

    for pattern in PROHIBITED_PATTERNS:
        if pattern.search(cleaned):
            raise ValidationFailed("Prompt contains prohibited content")
    return cleaned


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def decoded_size(data_uri: str) -> int:
    """Byte length of the base64 payload of a data URI, without decoding it."""
    payload = data_uri.split(",", 1)[1] if "," in data_uri else data_uri
    payload = payload.strip()
    padding = len(payload) - len(payload.rstrip("="))
    return max(0, len(payload) * 3 // 4 - padding)


def validate_image(image: Any, *, max_bytes: int) -> Optional[str]:
    if image is None or image == "":
        return None
    if not isinstance(image, str) or not image.startswith("data:image/"):
        raise ValidationFailed("Invalid image format")
    if decoded_size(image) > max_bytes:
        raise ValidationFailed(f"Image size must be less than {max_bytes // (1024 * 1024)}MB")
    return image


def validate_generation_body(body: Any, cfg: Settings = default_settings) -> RelayRequest:
    """Check a raw JSON body in the order the relay reports problems."""
    if not isinstance(body, dict):
        raise ValidationFailed("Request body must be a JSON object")

    prompt = sanitize_prompt(body.get("prompt"), min_chars=cfg.PROMPT_MIN_CHARS, max_chars=cfg.PROMPT_MAX_CHARS)

    aspect_ratio = body.get("aspectRatio")
    if aspect_ratio and aspect_ratio not in ASPECT_RATIOS:
        raise ValidationFailed(f"Invalid aspect ratio. Must be one of: {', '.join(ASPECT_RATIOS)}")

    duration = body.get("duration")
    if duration is not None and (not _is_number(duration) or duration < 1 or duration > 20):
        raise ValidationFailed("Duration must be a number between 1 and 20 seconds")

    image = validate_image(body.get("image"), max_bytes=cfg.IMAGE_MAX_BYTES)

    resolution = body.get("resolution")
    if resolution is not None and resolution not in RESOLUTIONS:
        raise ValidationFailed(f"Invalid resolution. Must be one of: {', '.join(sorted(RESOLUTIONS))}")

    fps = body.get("fps")
    if fps is not None and (not _is_number(fps) or fps not in FPS_VALUES):
        raise ValidationFailed("FPS must be one of: 24, 30, 60")

    negative_prompt = body.get("negativePrompt")
    if negative_prompt is not None and not isinstance(negative_prompt, str):
        raise ValidationFailed("Negative prompt must be a string")

    model = body.get("model") or cfg.DEFAULT_MODEL
    if not isinstance(model, str):
        raise ValidationFailed("Model must be a string")

    return RelayRequest(
        prompt=prompt,
        aspectRatio=aspect_ratio or cfg.DEFAULT_ASPECT_RATIO,
        duration=int(duration) if duration else cfg.DEFAULT_DURATION_S,
        model=model,
        image=image,
        negativePrompt=(negative_prompt.strip()[:cfg.PROMPT_MAX_CHARS] or None) if negative_prompt else None,
        resolution=resolution,
        fps=int(fps) if fps is not None else None,
    )
