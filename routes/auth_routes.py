from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from controllers.auth_controller import AuthController
from db.config import Settings
from routes.deps import client_ip, get_session, get_settings
from schemas.auth import LoginRequest, RegisterRequest
from services.auth_service import TOKEN_COOKIE, cookie_options, to_profile
from services.errors import ValidationFailed

router = APIRouter(prefix="/api/auth", tags=["auth"])


async def _json_body(request: Request) -> dict:
    if "application/json" not in (request.headers.get("content-type") or ""):
        raise ValidationFailed("Invalid request format")
    try:
        body = await request.json()
    except ValueError as e:
        raise ValidationFailed("Request body must be valid JSON") from e
    if not isinstance(body, dict):
        raise ValidationFailed("Request body must be a JSON object")
    return body


def _first_error(exc: ValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Request validation failed"
    err = errors[0]
    field = ".".join(str(p) for p in err.get("loc", ()))
    return f"{field}: {err.get('msg')}" if field else err.get("msg", "Request validation failed")


@router.post("/register")
async def register(request: Request, session: AsyncSession = Depends(get_session),
                   cfg: Settings = Depends(get_settings)):
    await request.app.state.register_limiter.hit(client_ip(request))
    raw = await _json_body(request)
    try:
        body = RegisterRequest(**raw)
    except ValidationError as e:
        raise ValidationFailed(_first_error(e)) from e

    ctrl = AuthController(session, cfg)
    user, token = await ctrl.register(body=body)
    response = JSONResponse(
        {"success": True, "data": {"user": to_profile(user).model_dump(mode="json")},
         "message": "Registration successful"},
        status_code=201,
    )
    response.set_cookie(TOKEN_COOKIE, token, **cookie_options(cfg))
    return response


@router.post("/login")
async def login(request: Request, session: AsyncSession = Depends(get_session),
                cfg: Settings = Depends(get_settings)):
    raw = await _json_body(request)
    try:
        body = LoginRequest(**raw)
    except ValidationError as e:
        raise ValidationFailed("Please enter email and password") from e

    ctrl = AuthController(session, cfg)
    user, token = await ctrl.login(body=body)
    response = JSONResponse(
        {"success": True, "message": "Login successful",
         "data": {"user": to_profile(user).model_dump(mode="json"), "token": token}},
    )
    response.set_cookie(TOKEN_COOKIE, token, **cookie_options(cfg))
    return response


@router.post("/logout")
async def logout(cfg: Settings = Depends(get_settings)):
    response = JSONResponse({"success": True, "message": "Logout successful"})
    response.set_cookie(TOKEN_COOKIE, "", **cookie_options(cfg, clear=True))
    return response
