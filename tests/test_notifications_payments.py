import asyncio
import hashlib
import hmac
import json

import fakeredis
import fakeredis.aioredis
import httpx
from redis.exceptions import ConnectionError as RedisConnectionError

from brimasouk import notifications
from brimasouk.notifications import EmailDispatcher, Notifier
from brimasouk.payments import PaymentGateway


# ── Notifications ────────────────────────────────


async def test_notify_publishes_payload(redis, notifier):
    pubsub = redis.pubsub()
    await pubsub.subscribe("notifications")
    await pubsub.get_message(timeout=0.1)

    assert await notifier.notify("u-1", "Order Placed", "Thanks", type="order_created", order_id="o-1")

    message = await pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
    payload = json.loads(message["data"])
    assert payload["user_id"] == "u-1"
    assert payload["title"] == "Order Placed"
    assert payload["data"] == {"type": "order_created", "order_id": "o-1"}
    await pubsub.aclose()


async def test_notify_swallows_redis_errors(redis, notifier, monkeypatch):
    async def broken_publish(channel, message):
        raise RedisConnectionError("redis is down")

    monkeypatch.setattr(redis, "publish", broken_publish)
    assert await notifier.notify("u-1", "Hello", "World") is False


async def test_email_dispatcher_records_sent_mail():
    dispatcher = EmailDispatcher()
    await dispatcher.dispatch({"user_id": "u-1", "title": "Hi", "data": {"type": "order_updated"}})
    assert dispatcher.sent == [{"user_id": "u-1", "title": "Hi", "data": {"type": "order_updated"}}]


async def test_subscriber_dispatches_until_shutdown(monkeypatch):
    server = fakeredis.FakeServer()
    monkeypatch.setattr(
        notifications.aioredis,
        "from_url",
        lambda url, **kwargs: fakeredis.aioredis.FakeRedis(server=server, **kwargs),
    )
    publisher = Notifier(fakeredis.aioredis.FakeRedis(server=server, decode_responses=True))
    dispatcher = EmailDispatcher()
    shutdown = asyncio.Event()

    task = asyncio.create_task(
        notifications.run_subscriber("redis://fake", dispatcher, shutdown)
    )
    for _ in range(50):
        await publisher.notify("u-7", "Reservation Confirmed", "See you there")
        await asyncio.sleep(0.05)
        if dispatcher.sent:
            break

    shutdown.set()
    await asyncio.wait_for(task, timeout=5)
    await publisher.aclose()

    assert dispatcher.sent
    assert dispatcher.sent[0]["user_id"] == "u-7"
    assert dispatcher.sent[0]["title"] == "Reservation Confirmed"


# ── Payment gateway ──────────────────────────────


ORDER = {"id": "o-1", "total_amount": 87.99, "customer_name": "Amira", "customer_email": "a@example.tn"}


async def test_mock_gateway_always_succeeds(payments):
    session = await payments.create_payment_session(ORDER)
    assert session.success
    assert session.payment_reference.startswith("BR-")
    assert session.session_id.startswith("mock-session-")

    verification = await payments.verify_payment(session.session_id)
    assert verification.success
    assert verification.status == "COMPLETED"
    assert verification.transaction_id.startswith("mock-transaction-")


async def test_live_gateway_signs_requests():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if request.url.path == "/payments/create":
            return httpx.Response(200, json={"paymentUrl": "https://pay.test/s/1", "sessionId": "s-1"})
        return httpx.Response(200, json={"status": "COMPLETED", "transactionId": "tx-9"})

    gateway = PaymentGateway(
        httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="https://epay.test"),
        merchant_id="m-1",
        secret_key="k",
        live=True,
    )

    session = await gateway.create_payment_session(ORDER)
    assert session.success
    assert session.payment_url == "https://pay.test/s/1"
    assert session.session_id == "s-1"

    body = json.loads(seen[0].content)
    assert body["merchantId"] == "m-1"
    assert body["amount"] == 87.99
    assert body["metadata"] == {"orderId": "o-1"}
    expected = hmac.new(
        b"k", json.dumps(body, separators=(",", ":")).encode(), hashlib.sha256
    ).hexdigest()
    assert seen[0].headers["X-Signature"] == expected

    verification = await gateway.verify_payment("s-1")
    assert seen[1].url.path == "/payments/status/s-1"
    assert verification.status == "COMPLETED"
    assert verification.transaction_id == "tx-9"
    await gateway.aclose()


async def test_live_gateway_reports_http_errors():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, json={"error": "boom"})

    gateway = PaymentGateway(
        httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="https://epay.test"),
        live=True,
    )

    session = await gateway.create_payment_session(ORDER)
    assert not session.success
    assert session.error

    verification = await gateway.verify_payment("s-1")
    assert not verification.success
    assert verification.status == "UNKNOWN"
    await gateway.aclose()
