"""SQLite persistence for ScheduleDefinition objects."""

from sqlalchemy import text
from sqlalchemy.ext.asyncio import create_async_engine

from scheduler.models import ScheduleDefinition


class ScheduleStore:
    def __init__(self, db_url: str = "sqlite+aiosqlite:///cartpilot.db"):
        self._engine = create_async_engine(db_url, echo=False)

    async def init(self) -> None:
        async with self._engine.begin() as conn:
            await conn.execute(text("""
                CREATE TABLE IF NOT EXISTS schedules (
                    schedule_id TEXT PRIMARY KEY,
                    template_id TEXT NOT NULL,
                    data        TEXT NOT NULL
                )
            """))

    async def save(self, schedule: ScheduleDefinition) -> None:
        async with self._engine.begin() as conn:
            await conn.execute(
                text("""
                    INSERT INTO schedules (schedule_id, template_id, data)
                    VALUES (:schedule_id, :template_id, :data)
                    ON CONFLICT(schedule_id) DO UPDATE
                    SET template_id=excluded.template_id, data=excluded.data
                """),
                {
                    "schedule_id": schedule.schedule_id,
                    "template_id": schedule.template_id,
                    "data": schedule.model_dump_json(),
                },
            )

    async def load(self, schedule_id: str) -> ScheduleDefinition:
        async with self._engine.connect() as conn:
            row = (await conn.execute(
                text("SELECT data FROM schedules WHERE schedule_id = :id"),
                {"id": schedule_id},
            )).fetchone()
        if row is None:
            raise KeyError(schedule_id)
        return ScheduleDefinition.model_validate_json(row[0])

    async def list_all(self) -> list[ScheduleDefinition]:
        async with self._engine.connect() as conn:
            rows = (await conn.execute(text("SELECT data FROM schedules ORDER BY rowid"))).fetchall()
        return [ScheduleDefinition.model_validate_json(r[0]) for r in rows]

    async def delete(self, schedule_id: str) -> None:
        async with self._engine.begin() as conn:
            await conn.execute(
                text("DELETE FROM schedules WHERE schedule_id = :id"),
                {"id": schedule_id},
            )

    async def delete_by_template(self, template_id: str) -> int:
        """Remove every schedule pointing at *template_id*; return how many went."""
        async with self._engine.begin() as conn:
            result = await conn.execute(
                text("DELETE FROM schedules WHERE template_id = :tid"),
                {"tid": template_id},
            )
        return result.rowcount or 0

    async def replace_all(self, schedules: list[ScheduleDefinition]) -> None:
        async with self._engine.begin() as conn:
            await conn.execute(text("DELETE FROM schedules"))
            for s in schedules:
                await conn.execute(
                    text("""
                        INSERT INTO schedules (schedule_id, template_id, data)
                        VALUES (:schedule_id, :template_id, :data)
                    """),
                    {"schedule_id": s.schedule_id, "template_id": s.template_id, "data": s.model_dump_json()},
                )

    async def dispose(self) -> None:
        await self._engine.dispose()
