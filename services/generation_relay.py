from typing import AsyncIterator

import httpx

from db.config import Settings, settings as default_settings
from db.logs import logger
from schemas.generation import RelayRequest, StartEvent, encode_event, error_event

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


class GenerationRelay:
    """Pipe the backend's generation event stream through to the browser.

    A synthetic ``start`` event goes out before the backend is contacted; after
    that, the backend's frames are forwarded without re-framing. Every failure
    ends the stream with one
    ``error`` event.
    """

    def __init__(self, client: httpx.AsyncClient, cfg: Settings = default_settings) -> None:
        self.client = client
        self.url = f"{cfg.backend_url}/api/public/generate"
        self.user_agent = cfg.USER_AGENT
        # Generations run for minutes; only the connect phase is bounded
        self.timeout = httpx.Timeout(cfg.PROXY_TIMEOUT_S, read=None)

    async def stream(self, request: RelayRequest, *, api_key: str) -> AsyncIterator[bytes]:
        yield encode_event(StartEvent(message="Video generation started..."))

        headers = {
            "Content-Type": "application/json",
            "X-API-Key": api_key,
            "User-Agent": self.user_agent,
        }
        forwarded = 0
        try:
            async with self.client.stream(
                "POST", self.url, json=request.to_payload(), headers=headers, timeout=self.timeout
            ) as resp:
                if not resp.is_success:
                    raw = await resp.aread()
                    text = raw.decode("utf-8", errors="ignore")
                    logger.warning("Backend rejected generation: %s %s", resp.status_code, text[:200])
                    yield encode_event(error_event(text or f"API request failed: {resp.status_code}",
                                                   code=resp.status_code))
                    return

                async for chunk in resp.aiter_bytes():
                    forwarded += len(chunk)
                    yield chunk
        except httpx.HTTPError as e:
            logger.error("Stream error after %s bytes: %s", forwarded, e)
            yield encode_event(error_event(str(e) or "Generation failed"))
            return
        except Exception as e:
            logger.exception("Unexpected relay failure after %s bytes", forwarded)
            yield encode_event(error_event(str(e) or "Generation failed"))
            return

        logger.info("Generation stream closed by backend (%s bytes)", forwarded)
