import httpx
from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from db.logs import logger
from repositories.credit_repository import CreditRepository
from routes.deps import get_claims, get_session
from schemas.auth import TokenClaims
from schemas.video import CreditBalance, CreditTransactionOut, Pagination
from services.api_client import ApiClient
from services.proxy_service import classify_error

router = APIRouter(prefix="/api/credits", tags=["credits"])


@router.get("/balance")
async def balance(request: Request):
    cookie = request.headers.get("cookie") or ""
    if not cookie:
        return JSONResponse({"success": False, "error": "Not logged in, please log in first"}, status_code=401)

    api: ApiClient = request.app.state.api
    try:
        data = await api.get_credit_balance(cookie=cookie)
    except httpx.TransportError as e:
        if classify_error(e) == "timeout":
            logger.error("Credits balance backend timed out: %s", e)
            return JSONResponse({"success": False, "error": "Backend request timed out, please retry later"},
                                status_code=504)
        logger.error("Credits balance backend unreachable: %s", e)
        return JSONResponse({"success": False, "error": "Service temporarily unavailable, please retry later"},
                            status_code=503)
    return {"success": True, "data": CreditBalance(**data).model_dump(), "message": "OK"}


@router.get("/transactions")
async def transactions(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    claims: TokenClaims = Depends(get_claims),
    session: AsyncSession = Depends(get_session),
):
    repo = CreditRepository(session)
    rows, total = await repo.list_for_user(claims.userId, offset=(page - 1) * limit, limit=limit)
    items = [
        CreditTransactionOut(
            id=tx.id, type=tx.type.value, amount=tx.amount, balanceAfter=tx.balance_after,
            relatedId=tx.related_id, description=tx.description, createdAt=tx.created_at,
        ).model_dump(mode="json")
        for tx in rows
    ]
    return {
        "success": True,
        "data": {"transactions": items,
                 "pagination": Pagination.build(page=page, limit=limit, total=total).model_dump()},
    }
