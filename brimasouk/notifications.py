"""
Brimasouk — 通知 (Notification dispatch)

注文作成・キャンセル・ステータス更新などの副作用として
Redis Pub/Sub の notifications チャネルにメッセージを発行する。

通知は fire-and-forget:
発行に失敗してもログに残すだけで、元の状態遷移はロールバックしない。

サブスクライバーはチャネルを購読し、EmailDispatcher に渡す。
注意: Redis Pub/Sub はサービス停止中のメッセージを失う。
"""

import asyncio
import json
import logging
from datetime import datetime, timezone

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from .config import NOTIFICATION_CHANNEL

logger = logging.getLogger(__name__)


class Notifier:
    """起動時に構築され、リクエストごとに注入される通知の発行者。"""

    def __init__(self, redis: aioredis.Redis, channel: str = NOTIFICATION_CHANNEL):
        self.redis = redis
        self.channel = channel

    async def notify(self, user_id: str, title: str, message: str, **data) -> bool:
        payload = {
            "user_id": str(user_id),
            "title": title,
            "message": message,
            "data": data,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        try:
            await self.redis.publish(self.channel, json.dumps(payload, default=str))
        except (RedisError, OSError):
            logger.warning("Notification dropped for user %s: %s", user_id, title, exc_info=True)
            return False
        return True

    async def aclose(self) -> None:
        await self.redis.aclose()


class EmailDispatcher:
    """
    通知をメールとして配送する。
    SMTP 連携は対象外なので、配送ログを残して送信済みとして扱う。
    """

    def __init__(self) -> None:
        self.sent: list[dict] = []

    async def dispatch(self, notification: dict) -> None:
        self.sent.append(notification)
        logger.info(
            "Email to user %s: %s (%s)",
            notification.get("user_id"),
            notification.get("title"),
            notification.get("data", {}).get("type", "generic"),
        )


async def run_subscriber(
    redis_url: str,
    dispatcher: EmailDispatcher,
    shutdown_event: asyncio.Event,
    channel: str = NOTIFICATION_CHANNEL,
) -> None:
    """
    notifications チャネルを購読し、受信したメッセージを配送する。
    shutdown_event がセットされるまで待機し続ける。
    """
    redis_conn = aioredis.from_url(redis_url, decode_responses=True)
    pubsub = redis_conn.pubsub()
    await pubsub.subscribe(channel)
    logger.info("Subscribed to %s channel", channel)

    try:
        while not shutdown_event.is_set():
            message = await pubsub.get_message(
                ignore_subscribe_messages=True, timeout=1.0
            )
            if message and message["type"] == "message":
                try:
                    await dispatcher.dispatch(json.loads(message["data"]))
                except Exception:
                    logger.exception("Failed to dispatch notification")
            else:
                await asyncio.sleep(0.1)
    finally:
        await pubsub.unsubscribe(channel)
        await pubsub.aclose()
        await redis_conn.aclose()
