"""HistoryStore: append-only record of ExecutionOutcome rows."""

from datetime import datetime, time, timedelta, timezone, tzinfo
from enum import Enum

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import create_async_engine

from scheduler.models import ExecutionOutcome

_metadata = sa.MetaData()

_outcomes = sa.Table(
    "execution_outcomes",
    _metadata,
    sa.Column("outcome_id",   sa.String, primary_key=True),
    sa.Column("status",       sa.String, nullable=False, index=True),
    sa.Column("triggered_by", sa.String, nullable=False),
    sa.Column("template_id",  sa.String, nullable=True, index=True),
    sa.Column("timestamp",    sa.String, nullable=False, index=True),   # ISO-8601 UTC
    sa.Column("data",         sa.Text,   nullable=False),
)


class HistoryPeriod(str, Enum):
    TODAY = "today"
    WEEK = "week"
    MONTH = "month"
    ALL = "all"


def period_start(period: HistoryPeriod, now: datetime, tz: tzinfo = timezone.utc) -> datetime | None:
    """Local midnight that opens *period*; weeks start on Sunday. None for ALL."""
    local_today = now.astimezone(tz).date()
    if period == HistoryPeriod.TODAY:
        start = local_today
    elif period == HistoryPeriod.WEEK:
        start = local_today - timedelta(days=(local_today.weekday() + 1) % 7)
    elif period == HistoryPeriod.MONTH:
        start = local_today.replace(day=1)
    else:
        return None
    return datetime.combine(start, time(0, 0), tzinfo=tz).astimezone(timezone.utc)


class HistoryStore:
    """History collaborator: every automation run lands here exactly once."""

    def __init__(self, db_url: str = "sqlite+aiosqlite:///cartpilot.db"):
        self._engine = create_async_engine(db_url, echo=False)

    async def init(self) -> None:
        async with self._engine.begin() as conn:
            await conn.run_sync(_metadata.create_all)

    async def record(self, outcome: ExecutionOutcome) -> None:
        # Plain INSERT: a second write of the same outcome is an error, not an update.
        async with self._engine.begin() as conn:
            await conn.execute(
                sa.insert(_outcomes).values(
                    outcome_id=outcome.outcome_id,
                    status=outcome.status.value,
                    triggered_by=outcome.triggered_by.value,
                    template_id=outcome.template_id,
                    timestamp=outcome.timestamp.astimezone(timezone.utc).isoformat(),
                    data=outcome.model_dump_json(),
                )
            )

    async def list_all(
        self,
        since: datetime | None = None,
        status: str | None = None,
        limit: int | None = None,
    ) -> list[ExecutionOutcome]:
        """Most recent first."""
        query = sa.select(_outcomes.c.data)
        if since is not None:
            query = query.where(_outcomes.c.timestamp >= since.astimezone(timezone.utc).isoformat())
        if status:
            query = query.where(_outcomes.c.status == status)
        query = query.order_by(_outcomes.c.timestamp.desc())
        if limit:
            query = query.limit(limit)
        async with self._engine.connect() as conn:
            rows = (await conn.execute(query)).fetchall()
        return [ExecutionOutcome.model_validate_json(r.data) for r in rows]

    async def clear(self) -> None:
        async with self._engine.begin() as conn:
            await conn.execute(sa.delete(_outcomes))

    async def replace_all(self, outcomes: list[ExecutionOutcome]) -> None:
        await self.clear()
        for o in outcomes:
            await self.record(o)

    async def dispose(self) -> None:
        await self._engine.dispose()
