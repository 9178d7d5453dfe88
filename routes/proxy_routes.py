from fastapi import APIRouter, Request, Response
from fastapi.responses import JSONResponse

from services.proxy_service import PROXY_METHODS, ProxyService, cors_headers

router = APIRouter(prefix="/api/proxy", tags=["proxy"])


@router.options("/{path:path}")
async def preflight(path: str, request: Request):
    return Response(status_code=204, headers=cors_headers(request.headers.get("origin"), request.app.state.settings))


@router.api_route("/{path:path}", methods=list(PROXY_METHODS))
async def proxy(path: str, request: Request):
    service: ProxyService = request.app.state.proxy
    body = await request.body() if request.method in {"POST", "PUT", "PATCH"} else None

    result = await service.forward(
        method=request.method,
        path=path,
        headers=list(request.headers.items()),
        body=body,
        query=request.url.query,
    )

    if result.json_body is not None:
        return JSONResponse(result.json_body, status_code=result.status_code)

    response = Response(content=result.body, status_code=result.status_code, media_type=result.content_type)
    for key, value in cors_headers(request.headers.get("origin"), service.cfg).items():
        response.headers[key] = value
    # one header per cookie; joining them would corrupt Expires dates
    for cookie in result.set_cookies:
        response.headers.append("set-cookie", cookie)
    return response
