"""
Brimasouk — 決済ゲートウェイ (e-pay) クライアント

注文ステートマシンから見ると不透明な外部コラボレーター。
  create_payment_session(order) → PaymentSession
  verify_payment(session_id)    → PaymentVerification

本番以外ではゲートウェイを呼ばずにモック応答を返す。
通信エラーは success=False の結果として返し、呼び出し側で扱う。
"""

import hashlib
import hmac
import json
import logging
import random
import time
from typing import Optional

import httpx
from pydantic import BaseModel

from . import config

logger = logging.getLogger(__name__)


class PaymentSession(BaseModel):
    success: bool
    payment_url: Optional[str] = None
    session_id: Optional[str] = None
    payment_reference: Optional[str] = None
    error: Optional[str] = None


class PaymentVerification(BaseModel):
    success: bool
    status: str = "UNKNOWN"
    transaction_id: Optional[str] = None
    payment_method: Optional[str] = None
    error: Optional[str] = None


class PaymentGateway:
    def __init__(
        self,
        client: httpx.AsyncClient,
        merchant_id: str = config.EPAY_MERCHANT_ID,
        secret_key: str = config.EPAY_SECRET_KEY,
        live: bool = config.ENVIRONMENT == "production",
    ):
        self.client = client
        self.merchant_id = merchant_id
        self.secret_key = secret_key
        self.live = live

    def generate_signature(self, data: dict) -> str:
        payload = json.dumps(data, separators=(",", ":"), default=str)
        return hmac.new(
            self.secret_key.encode(), payload.encode(), hashlib.sha256
        ).hexdigest()

    async def create_payment_session(self, order: dict) -> PaymentSession:
        payment_ref = f"BR-{int(time.time() * 1000)}-{random.randint(0, 999)}"
        payment_data = {
            "merchantId": self.merchant_id,
            "paymentReference": payment_ref,
            "amount": order["total_amount"],
            "currency": config.PAYMENT_CURRENCY,
            "description": f"Commande Brima Souk #{order['id']}",
            "returnUrl": f"{config.FRONTEND_URL}/payment/confirm",
            "cancelUrl": f"{config.FRONTEND_URL}/payment/cancel",
            "notifyUrl": f"{config.BACKEND_URL}/api/payments/webhook",
            "customerInfo": {
                "fullName": order.get("customer_name") or "",
                "email": order.get("customer_email") or "",
                "phoneNumber": order.get("customer_phone") or "",
            },
            "metadata": {"orderId": order["id"]},
        }

        if not self.live:
            logger.info("Payment session (mock) for order %s: %.2f", order["id"], order["total_amount"])
            return PaymentSession(
                success=True,
                payment_url="https://example.com/mock-payment",
                session_id=f"mock-session-{int(time.time() * 1000)}",
                payment_reference=payment_ref,
            )

        try:
            resp = await self.client.post(
                "/payments/create",
                json=payment_data,
                headers={"X-Signature": self.generate_signature(payment_data)},
            )
            resp.raise_for_status()
            body = resp.json()
        except httpx.HTTPError as e:
            logger.warning("Payment session creation failed for order %s: %s", order["id"], e)
            return PaymentSession(success=False, error=str(e))

        return PaymentSession(
            success=True,
            payment_url=body.get("paymentUrl"),
            session_id=body.get("sessionId"),
            payment_reference=payment_ref,
        )

    async def verify_payment(self, session_id: str) -> PaymentVerification:
        if not self.live:
            logger.info("Payment verification (mock) for session %s", session_id)
            return PaymentVerification(
                success=True,
                status="COMPLETED",
                transaction_id=f"mock-transaction-{int(time.time() * 1000)}",
                payment_method="card",
            )

        try:
            resp = await self.client.get(
                f"/payments/status/{session_id}",
                headers={"X-Signature": self.generate_signature({"sessionId": session_id})},
            )
            resp.raise_for_status()
            body = resp.json()
        except httpx.HTTPError as e:
            logger.warning("Payment verification failed for session %s: %s", session_id, e)
            return PaymentVerification(success=False, error=str(e))

        return PaymentVerification(
            success=True,
            status=body.get("status", "UNKNOWN"),
            transaction_id=body.get("transactionId"),
            payment_method=body.get("paymentMethod"),
        )

    async def aclose(self) -> None:
        await self.client.aclose()
