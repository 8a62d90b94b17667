"""
Mapping of engine rejections to HTTP responses
"""

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from loguru import logger

from src.core.enums import EngineErrorKind
from src.core.exceptions import StorageUnavailableError
from src.core.results import EngineResult

ERROR_STATUS_CODES = {
    EngineErrorKind.NOT_FOUND: 404,
    EngineErrorKind.USER_NOT_FOUND: 404,
    EngineErrorKind.INACTIVE: 400,
    EngineErrorKind.EXPIRED: 400,
    EngineErrorKind.OWN_CODE: 400,
    EngineErrorKind.INVALID_AMOUNT: 400,
    EngineErrorKind.INSUFFICIENT_BALANCE: 400,
    EngineErrorKind.USAGE_LIMIT_REACHED: 409,
    EngineErrorKind.ALREADY_APPLIED: 409,
}


def raise_for_result(result: EngineResult) -> None:
    """Raise HTTPException with {"error", "message"} body for rejected result"""
    if result.ok:
        return
    raise HTTPException(
        status_code=ERROR_STATUS_CODES.get(result.error, 400),
        detail=result.error_dict(),
    )


async def storage_unavailable_handler(request: Request, exc: StorageUnavailableError) -> JSONResponse:
    """Infrastructure faults are 503, never a business rejection"""
    logger.error(f"{request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=503,
        content={"error": "storage_unavailable", "message": "Сервис временно недоступен, попробуйте позже"},
    )
