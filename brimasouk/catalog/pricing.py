"""
Catalog — 価格ルール (純粋関数)

承認時のマークアップ計算や割引価格の計算は、
永続化フックに隠さずここで明示的に行う。
"""

from datetime import datetime


def compute_approved_price(original_price: float, markup_percentage: float) -> float:
    """承認時の販売価格 = 元値 × (1 + マークアップ率/100)、セント単位に丸める。"""
    return round(original_price * (1 + markup_percentage / 100), 2)


def discounted_price(price: float, discount_percentage: float) -> float:
    return round(price * (1 - discount_percentage / 100), 2)


def is_flash_sale_active(
    promotional_status: str,
    start: datetime | None,
    end: datetime | None,
    now: datetime,
) -> bool:
    if promotional_status != "flash_sale" or start is None or end is None:
        return False
    return start <= now <= end


def effective_promotion(
    promotional_status: str,
    discount_percentage: float,
    end: datetime | None,
    now: datetime,
) -> tuple[str, float]:
    """終了したフラッシュセールは「なし・割引 0」として扱う。"""
    if promotional_status == "flash_sale" and end is not None and now > end:
        return "none", 0.0
    return promotional_status, discount_percentage
