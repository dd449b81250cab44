"""
Brimasouk — イベントストア

すべての状態変更をドメインイベントとして追記する監査ログ。
現在の状態はテーブル(リードモデル)が持ち、イベントストアは履歴を持つ。
バージョン番号による楽観的ロックで同時書き込みを防ぐ。
"""

import json
from uuid import UUID

from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from .database import to_iso, utcnow


async def append_event(
    session: AsyncSession,
    aggregate_id: UUID | str,
    aggregate_type: str,
    event_type: str,
    event_data: dict,
    expected_version: int,
) -> int:
    """
    イベントをストアに追記する。

    expected_version で楽観的ロックを実現:
    同じ aggregate_id + version の組み合わせが既に存在すると
    主キー制約違反で失敗する → 競合を検知できる。
    """
    new_version = expected_version + 1
    await session.execute(
        text("""
            INSERT INTO event_store
                (aggregate_id, aggregate_type, event_type, event_data, version, created_at)
            VALUES
                (:agg_id, :agg_type, :evt_type, :evt_data, :version, :now)
        """),
        {
            "agg_id": str(aggregate_id),
            "agg_type": aggregate_type,
            "evt_type": event_type,
            "evt_data": json.dumps(event_data, default=str),
            "version": new_version,
            "now": to_iso(utcnow()),
        },
    )
    return new_version


async def current_version(session: AsyncSession, aggregate_id: UUID | str) -> int:
    result = await session.execute(
        text("SELECT MAX(version) AS version FROM event_store WHERE aggregate_id = :agg_id"),
        {"agg_id": str(aggregate_id)},
    )
    return result.scalar() or 0


async def record(
    session: AsyncSession,
    aggregate_id: UUID | str,
    aggregate_type: str,
    event: BaseModel,
) -> int:
    """ドメインイベント(pydantic モデル)を現在のバージョンの次に追記する。"""
    version = await current_version(session, aggregate_id)
    return await append_event(
        session,
        aggregate_id,
        aggregate_type,
        type(event).__name__,
        event.model_dump(mode="json"),
        version,
    )


async def load_events(
    session: AsyncSession,
    aggregate_id: UUID | str,
) -> list[dict]:
    """指定した集約の全イベントをバージョン順に読み出す。"""
    result = await session.execute(
        text("""
            SELECT aggregate_type, event_type, event_data, version, created_at
            FROM event_store
            WHERE aggregate_id = :agg_id
            ORDER BY version ASC
        """),
        {"agg_id": str(aggregate_id)},
    )
    return [
        {
            "aggregate_type": row.aggregate_type,
            "event_type": row.event_type,
            "event_data": json.loads(row.event_data) if isinstance(row.event_data, str) else row.event_data,
            "version": row.version,
            "created_at": row.created_at,
        }
        for row in result.fetchall()
    ]


async def load_all_events(
    session: AsyncSession,
    aggregate_type: str | None = None,
    limit: int = 200,
) -> list[dict]:
    """新しい順にイベントを返す(管理画面の履歴表示用)。"""
    sql = """
        SELECT aggregate_id, aggregate_type, event_type, event_data, version, created_at
        FROM event_store
    """
    params: dict = {"limit": limit}
    if aggregate_type:
        sql += " WHERE aggregate_type = :agg_type"
        params["agg_type"] = aggregate_type
    sql += " ORDER BY created_at DESC, version DESC LIMIT :limit"
    result = await session.execute(text(sql), params)
    return [
        {
            "aggregate_id": str(row.aggregate_id),
            "aggregate_type": row.aggregate_type,
            "event_type": row.event_type,
            "event_data": json.loads(row.event_data) if isinstance(row.event_data, str) else row.event_data,
            "version": row.version,
            "created_at": row.created_at,
        }
        for row in result.fetchall()
    ]
