"""
Brimasouk — エラー分類 (Error taxonomy)

コマンドハンドラと集約はこれらの例外を送出し、
HTTP 境界(main.py)で JSON レスポンス {message, ...context} に変換する。
"""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

logger = logging.getLogger(__name__)


class MarketplaceError(Exception):
    status_code = 500

    def __init__(self, message: str, **context) -> None:
        super().__init__(message)
        self.message = message
        self.context = context


class ValidationError(MarketplaceError):
    """入力の欠落・不正"""
    status_code = 400


class AuthorizationError(MarketplaceError):
    """ロール不足・所有者以外の操作"""
    status_code = 403


class NotFoundError(MarketplaceError):
    status_code = 404


class ConflictError(MarketplaceError):
    """ビジネスルール違反(在庫不足・満席・承認済みなど)"""
    status_code = 400


async def _marketplace_error_handler(request: Request, exc: MarketplaceError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": exc.message, **exc.context},
    )


async def _integrity_error_handler(request: Request, exc: IntegrityError):
    # イベントストアのバージョン衝突・UNIQUE 制約違反
    logger.warning("Integrity error on %s %s: %s", request.method, request.url.path, exc.orig)
    return JSONResponse(
        status_code=ConflictError.status_code,
        content={"message": "Conflicting update, please retry"},
    )


async def _unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={"message": "Server error", "error": str(exc)},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(MarketplaceError, _marketplace_error_handler)
    app.add_exception_handler(IntegrityError, _integrity_error_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)
