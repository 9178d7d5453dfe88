import json
from typing import Optional

from db.config import Settings
from schemas.generation import RelayRequest
from services.errors import Forbidden, ValidationFailed
from services.prompt_guard import validate_api_key, validate_generation_body
from services.rate_limiter import FixedWindowRateLimiter


class GenerationController:
    def __init__(self, *, limiter: FixedWindowRateLimiter, cfg: Settings):
        self.limiter = limiter
        self.cfg = cfg

    async def admit(
        self,
        *,
        client_ip: str,
        api_key: Optional[str],
        origin: Optional[str],
        content_type: Optional[str],
        raw_body: bytes,
    ) -> tuple[RelayRequest, str]:
        """Run every boundary check; nothing reaches the backend unless all pass."""
        await self.limiter.hit(client_ip)
        key = validate_api_key(api_key)

        if origin and origin not in self.cfg.allowed_origins:
            raise Forbidden("Origin not allowed")
        if not content_type or "application/json" not in content_type:
            raise ValidationFailed("Invalid content type")

        try:
            body = json.loads(raw_body or b"null")
        except ValueError as e:
            raise ValidationFailed("Request body must be valid JSON") from e
        return validate_generation_body(body, self.cfg), key
