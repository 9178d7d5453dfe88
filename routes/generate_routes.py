from fastapi import APIRouter, Request
from fastapi.responses import StreamingResponse

from controllers.generation_controller import GenerationController
from db.logs import logger
from routes.deps import client_ip
from services.generation_relay import SSE_HEADERS, GenerationRelay

router = APIRouter(prefix="/api", tags=["generate"])


@router.post("/generate")
async def generate(request: Request):
    ctrl = GenerationController(limiter=request.app.state.generate_limiter, cfg=request.app.state.settings)
    relay_request, api_key = await ctrl.admit(
        client_ip=client_ip(request),
        api_key=request.headers.get("x-api-key"),
        origin=request.headers.get("origin"),
        content_type=request.headers.get("content-type"),
        raw_body=await request.body(),
    )

    relay: GenerationRelay = request.app.state.relay
    logger.info("Relaying generation (%s, %ss, %s)", relay_request.aspectRatio, relay_request.duration,
                relay_request.model)
    return StreamingResponse(
        relay.stream(relay_request, api_key=api_key),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
