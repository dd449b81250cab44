"""
Brimasouk — 設定 (Configuration)

すべての設定は環境変数から読み込む。
デフォルト値はローカル開発用(SQLite + ローカル Redis + 決済モック)。
"""

import os


def _flag(name: str, default: str) -> bool:
    return os.environ.get(name, default).lower() in ("1", "true", "yes", "on")


DATABASE_URL = os.environ.get("DATABASE_URL", "sqlite+aiosqlite:///./brimasouk.db")
REDIS_URL = os.environ.get("REDIS_URL", "redis://localhost:6379")

JWT_SECRET = os.environ.get("JWT_SECRET", "dev-secret-change-me")
JWT_ALGORITHM = "HS256"

ENVIRONMENT = os.environ.get("ENVIRONMENT", "development")
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

# 決済ゲートウェイ (e-pay)
EPAY_API_URL = os.environ.get("EPAY_API_URL", "https://api.epay-attijari.sandbox")
EPAY_MERCHANT_ID = os.environ.get("EPAY_MERCHANT_ID", "test_merchant")
EPAY_SECRET_KEY = os.environ.get("EPAY_SECRET_KEY", "test_secret_key")
PAYMENT_CURRENCY = os.environ.get("PAYMENT_CURRENCY", "TND")
FRONTEND_URL = os.environ.get("FRONTEND_URL", "http://localhost:3000")
BACKEND_URL = os.environ.get("BACKEND_URL", "http://localhost:8000")

# 価格・配送ルール
DEFAULT_MARKUP_PERCENTAGE = float(os.environ.get("DEFAULT_MARKUP_PERCENTAGE", "30"))
SHIPPING_FEE = float(os.environ.get("SHIPPING_FEE", "7.99"))
FREE_SHIPPING_THRESHOLD = float(os.environ.get("FREE_SHIPPING_THRESHOLD", "100"))
DELIVERY_DAYS = int(os.environ.get("DELIVERY_DAYS", "10"))

# プロダクト判断が必要な挙動はフラグで切り替える
RESERVE_STOCK_ON_ORDER = _flag("RESERVE_STOCK_ON_ORDER", "false")
RELEASE_PROMO_ON_CANCEL = _flag("RELEASE_PROMO_ON_CANCEL", "false")

ENABLE_NOTIFICATION_SUBSCRIBER = _flag("ENABLE_NOTIFICATION_SUBSCRIBER", "true")
NOTIFICATION_CHANNEL = "notifications"
