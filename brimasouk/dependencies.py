"""
Brimasouk — 依存性注入

Notifier と PaymentGateway は lifespan で構築して app.state に置き、
リクエストごとにここから取り出す(モジュールグローバルは持たない)。
"""

from fastapi import Request

from .notifications import Notifier
from .payments import PaymentGateway


def get_notifier(request: Request) -> Notifier:
    return request.app.state.notifier


def get_payments(request: Request) -> PaymentGateway:
    return request.app.state.payments
