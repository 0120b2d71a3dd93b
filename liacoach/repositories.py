from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from sqlalchemy import Select, select
from sqlalchemy.orm import Session, sessionmaker

from liacoach.chat_events import event_ts
from liacoach.jsonutil import dumps, loads
from liacoach.models import ChatEventRecord, CoachPlanRecord
from liacoach.plan_store import CoachPlanStore


class CoachPlanRepo:
    """CoachPlanStorage backed by one `coach_plans` row per user."""

    def __init__(self, session_factory: sessionmaker[Session], user_key: str):
        self.session_factory = session_factory
        self.user_key = user_key

    def _get(self, db: Session) -> CoachPlanRecord | None:
        q: Select[tuple[CoachPlanRecord]] = select(CoachPlanRecord).where(CoachPlanRecord.user_key == self.user_key)
        return db.execute(q).scalar_one_or_none()

    def load(self) -> Any | None:
        with self.session_factory() as db:
            row = self._get(db)
            return loads(row.plan_json) if row else None

    def save(self, plan: dict[str, Any]) -> None:
        version = (plan.get("metadata") or {}).get("version")
        with self.session_factory.begin() as db:
            row = self._get(db)
            if row is None:
                db.add(CoachPlanRecord(user_key=self.user_key, plan_json=dumps(plan), version=version))
                return
            row.plan_json = dumps(plan)
            row.version = version


class ChatEventRepo:
    def __init__(self, session_factory: sessionmaker[Session], user_key: str):
        self.session_factory = session_factory
        self.user_key = user_key

    def append(self, event: Mapping[str, Any]) -> None:
        ts = event_ts(event)
        if ts is None or not event.get("id"):
            raise ValueError("chat event needs an id and a numeric ts")
        with self.session_factory.begin() as db:
            db.add(
                ChatEventRecord(
                    user_key=self.user_key,
                    event_id=str(event["id"]),
                    role=str(event.get("role") or "user"),
                    type=str(event.get("type") or "text"),
                    ts=ts,
                    payload_json=dumps(dict(event)),
                )
            )

    def list_events(self, *, since_ts: int | None = None, limit: int | None = None) -> list[dict[str, Any]]:
        q = select(ChatEventRecord).where(ChatEventRecord.user_key == self.user_key)
        if since_ts is not None:
            q = q.where(ChatEventRecord.ts >= since_ts)
        q = q.order_by(ChatEventRecord.ts.asc(), ChatEventRecord.id.asc())
        with self.session_factory() as db:
            rows = list(db.execute(q).scalars().all())
        if limit is not None:
            rows = rows[-limit:]
        out = []
        for r in rows:
            payload = loads(r.payload_json)
            if isinstance(payload, dict):
                out.append(payload)
        return out


def sql_plan_store(session_factory: sessionmaker[Session], user_key: str) -> CoachPlanStore:
    return CoachPlanStore(CoachPlanRepo(session_factory, user_key))
