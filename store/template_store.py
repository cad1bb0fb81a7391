"""TemplateStore: SQLite-backed persistence for OrderTemplate."""

from datetime import datetime, timezone

import sqlalchemy as sa
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import create_async_engine

from scheduler.models import OrderTemplate

# ── Schema ───────────────────────────────────────────────────────────────────

_metadata = sa.MetaData()

_templates = sa.Table(
    "order_templates",
    _metadata,
    sa.Column("template_id", sa.String, primary_key=True),
    sa.Column("name",        sa.String, nullable=False, index=True),
    sa.Column("store_url",   sa.String, nullable=False),
    sa.Column("data",        sa.Text,   nullable=False),   # full Pydantic JSON
    sa.Column("updated_at",  sa.String, nullable=False),
)


# ── Store ────────────────────────────────────────────────────────────────────

class TemplateStore:
    """Persist and load OrderTemplate objects via SQLite."""

    def __init__(self, db_url: str = "sqlite+aiosqlite:///cartpilot.db"):
        self._engine = create_async_engine(db_url, echo=False)

    async def init(self) -> None:
        """Create tables if they don't exist. Call once at startup."""
        async with self._engine.begin() as conn:
            await conn.run_sync(_metadata.create_all)

    # ── CRUD ─────────────────────────────────────────────────────────────────

    async def save(self, template: OrderTemplate) -> None:
        """Insert or update a template (upsert)."""
        row = {
            "template_id": template.template_id,
            "name":        template.name,
            "store_url":   template.store_url,
            "data":        template.model_dump_json(),
            "updated_at":  datetime.now(timezone.utc).isoformat(),
        }
        async with self._engine.begin() as conn:
            await conn.execute(
                sqlite_insert(_templates)
                .values(**row)
                .on_conflict_do_update(
                    index_elements=["template_id"],
                    set_={k: row[k] for k in ("name", "store_url", "data", "updated_at")},
                )
            )

    async def load(self, template_id: str) -> OrderTemplate:
        """Load a template by ID. Raises KeyError if not found."""
        async with self._engine.connect() as conn:
            row = (await conn.execute(
                sa.select(_templates.c.data).where(_templates.c.template_id == template_id)
            )).fetchone()
        if row is None:
            raise KeyError(f"Order template '{template_id}' not found")
        return OrderTemplate.model_validate_json(row.data)

    async def list_all(self) -> list[OrderTemplate]:
        async with self._engine.connect() as conn:
            rows = (await conn.execute(
                sa.select(_templates.c.data).order_by(_templates.c.name)
            )).fetchall()
        return [OrderTemplate.model_validate_json(r.data) for r in rows]

    async def delete(self, template_id: str) -> None:
        async with self._engine.begin() as conn:
            await conn.execute(
                sa.delete(_templates).where(_templates.c.template_id == template_id)
            )

    async def mark_ordered(self, template_id: str, at: datetime | None = None) -> OrderTemplate:
        """Bump order_count and stamp last_ordered_at after a run added items."""
        template = await self.load(template_id)
        template.last_ordered_at = at or datetime.now(timezone.utc)
        template.order_count += 1
        await self.save(template)
        return template

    async def replace_all(self, templates: list[OrderTemplate]) -> None:
        async with self._engine.begin() as conn:
            await conn.execute(sa.delete(_templates))
        for t in templates:
            await self.save(t)

    async def dispose(self) -> None:
        await self._engine.dispose()
