"""
Brimasouk — FastAPI エントリーポイント

職人マーケットプレイスのバックエンド。
商品カタログ・注文・カート・プロモコード・体験イベント予約・管理者承認を
単一のアプリケーションとして提供する。

┌──────────┐  /api/*   ┌────────────────────┐   SQL    ┌────────────────┐
│ Frontend │ ────────▶ │ Brimasouk (FastAPI) │ ───────▶ │ DB + EventStore │
└──────────┘           └─────┬─────────┬─────┘          └────────────────┘
                             │         │ httpx
                  notifications         ▼
                   (Redis Pub/Sub)   e-pay gateway
"""

import asyncio
import logging
from contextlib import asynccontextmanager

import httpx
import redis.asyncio as aioredis
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import config
from .accounts.api import router as accounts_router
from .admin.api import router as admin_router
from .bookings.api import router as bookings_router
from .cart.api import router as cart_router
from .catalog.api import router as catalog_router
from .database import init_schema
from .errors import register_exception_handlers
from .notifications import EmailDispatcher, Notifier, run_subscriber
from .orders.api import router as orders_router
from .payments import PaymentGateway
from .promotions.api import router as promotions_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    起動時:
      1. スキーマ作成
      2. Notifier / PaymentGateway を構築して app.state に置く
      3. 通知サブスクライバーをバックグラウンドタスクとして開始
    停止時はその逆順に片付ける。
    """
    logging.basicConfig(level=config.LOG_LEVEL)
    await init_schema()

    redis = aioredis.from_url(config.REDIS_URL, decode_responses=True)
    app.state.notifier = Notifier(redis)
    app.state.payments = PaymentGateway(
        httpx.AsyncClient(base_url=config.EPAY_API_URL, timeout=30.0)
    )

    shutdown_event = asyncio.Event()
    subscriber_task = None
    if config.ENABLE_NOTIFICATION_SUBSCRIBER:
        subscriber_task = asyncio.create_task(
            run_subscriber(config.REDIS_URL, EmailDispatcher(), shutdown_event)
        )
    logger.info("Brimasouk started (%s)", config.ENVIRONMENT)

    yield

    shutdown_event.set()
    if subscriber_task is not None:
        subscriber_task.cancel()
        try:
            await subscriber_task
        except asyncio.CancelledError:
            pass
    await app.state.payments.aclose()
    await app.state.notifier.aclose()


app = FastAPI(title="Brimasouk Marketplace", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[config.FRONTEND_URL],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
register_exception_handlers(app)

app.include_router(catalog_router)
app.include_router(accounts_router)
app.include_router(promotions_router)
app.include_router(orders_router)
app.include_router(cart_router)
app.include_router(bookings_router)
app.include_router(admin_router)


@app.get("/health")
async def health():
    return {"status": "ok", "service": "brimasouk"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("brimasouk.main:app", host="0.0.0.0", port=8000)
