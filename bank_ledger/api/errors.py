"""
Translation of ledger errors into HTTP responses
"""

from fastapi import Request, status
from fastapi.responses import JSONResponse

from ..errors import ErrorKind, LedgerError
from ..logging_config import get_logger


logger = get_logger("bank_ledger.api")

STATUS_CODES = {
    ErrorKind.INVALID_AMOUNT: status.HTTP_400_BAD_REQUEST,
    ErrorKind.NO_SUCH_ACCOUNT: status.HTTP_400_BAD_REQUEST,
    ErrorKind.INVALID_ACCOUNT: status.HTTP_400_BAD_REQUEST,
    ErrorKind.NOT_ENOUGH_MONEY: status.HTTP_403_FORBIDDEN,
    ErrorKind.NO_SUCH_USER: status.HTTP_404_NOT_FOUND,
    ErrorKind.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKind.STORE_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorKind.NO_SUCH_CURRENCY: status.HTTP_400_BAD_REQUEST,
    ErrorKind.USER_ALREADY_EXISTS: status.HTTP_409_CONFLICT,
    ErrorKind.INVALID_EMAIL: status.HTTP_400_BAD_REQUEST,
    ErrorKind.INVALID_USER_INFO: status.HTTP_400_BAD_REQUEST,
    ErrorKind.INVALID_CREDENTIALS: status.HTTP_401_UNAUTHORIZED,
}


async def ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
    status_code = STATUS_CODES[exc.kind]
    if status_code >= 500:
        # Internal details stay in the logs
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        detail = "Internal server error"
    else:
        detail = exc.message
    return JSONResponse(status_code=status_code, content={"detail": detail, "error": exc.kind.value})
