"""Entity store gateway.

``EntityStore`` is the only door the forge core uses to reach campaign data.
``SqlEntityStore`` implements it on the SQLAlchemy models; tests substitute an
in-memory implementation.
"""

from __future__ import annotations

import copy
import uuid
from typing import Any, Optional, Protocol

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.attributes import flag_modified

from worldforge.models import Codex, Entity, Relationship
from worldforge.schemas import EntityRecord, RelationshipRecord
from worldforge.utils.logging_config import get_logger

_logger = get_logger("worldforge.gateway")

# Columns a caller may patch through ``update_entity``
UPDATABLE_FIELDS = frozenset({
    "name", "entity_type", "sub_type", "status", "summary", "description",
    "importance_tier", "visibility", "attributes",
})


class EntityStore(Protocol):
    async def find_by_name(self, campaign_id: str, entity_type: str, name: str) -> Optional[EntityRecord]:
        """Case-insensitive exact name lookup within one entity type."""
        ...

    async def search_by_name(self, campaign_id: str, name: str, limit: int = 5) -> list[EntityRecord]:
        """Entities of any type whose name contains ``name`` (case-insensitive)."""
        ...

    async def list_entities(self, campaign_id: str, entity_type: Optional[str] = None) -> list[EntityRecord]:
        ...

    async def get_entity(self, entity_id: str) -> Optional[EntityRecord]:
        ...

    async def insert_entity(self, entity: EntityRecord) -> EntityRecord:
        ...

    async def insert_relationship(
        self,
        campaign_id: str,
        source_id: str,
        target_id: str,
        relationship_type: str,
        description: Optional[str] = None,
    ) -> RelationshipRecord:
        ...

    async def update_entity(self, entity_id: str, patch: dict[str, Any]) -> None:
        ...

    async def get_codex(self, campaign_id: str) -> Optional[dict[str, Any]]:
        ...


def new_id() -> str:
    return str(uuid.uuid4())


def _to_record(entity: Entity) -> EntityRecord:
    return EntityRecord(
        id=entity.id,
        campaign_id=entity.campaign_id,
        name=entity.name,
        entity_type=entity.entity_type,
        sub_type=entity.sub_type,
        status=entity.status,
        summary=entity.summary,
        description=entity.description,
        importance_tier=entity.importance_tier,
        visibility=entity.visibility,
        source_forge=entity.source_forge,
        attributes=copy.deepcopy(entity.attributes or {}),
    )


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class SqlEntityStore:
    """``EntityStore`` backed by the ``entities`` / ``relationships`` / ``codex`` tables.

    Soft-deleted entities (``deleted_at`` set) are invisible to every read.
    """

    def __init__(self, session_factory: Optional[async_sessionmaker[AsyncSession]] = None):
        if session_factory is None:
            from worldforge.database import AsyncSessionLocal
            session_factory = AsyncSessionLocal
        self._session_factory = session_factory

    async def find_by_name(self, campaign_id: str, entity_type: str, name: str) -> Optional[EntityRecord]:
        async with self._session_factory() as db:
            result = await db.execute(
                select(Entity)
                .where(
                    Entity.campaign_id == campaign_id,
                    Entity.entity_type == entity_type,
                    func.lower(Entity.name) == name.strip().lower(),
                    Entity.deleted_at.is_(None),
                )
                .order_by(Entity.created_at)
                .limit(1)
            )
            entity = result.scalar_one_or_none()
            return _to_record(entity) if entity else None

    async def search_by_name(self, campaign_id: str, name: str, limit: int = 5) -> list[EntityRecord]:
        pattern = f"%{_escape_like(name.strip())}%"
        async with self._session_factory() as db:
            result = await db.execute(
                select(Entity)
                .where(
                    Entity.campaign_id == campaign_id,
                    Entity.name.ilike(pattern, escape="\\"),
                    Entity.deleted_at.is_(None),
                )
                .order_by(Entity.name)
                .limit(limit)
            )
            return [_to_record(e) for e in result.scalars().all()]

    async def list_entities(self, campaign_id: str, entity_type: Optional[str] = None) -> list[EntityRecord]:
        stmt = select(Entity).where(Entity.campaign_id == campaign_id, Entity.deleted_at.is_(None))
        if entity_type:
            stmt = stmt.where(Entity.entity_type == entity_type)
        async with self._session_factory() as db:
            result = await db.execute(stmt.order_by(Entity.name))
            return [_to_record(e) for e in result.scalars().all()]

    async def get_entity(self, entity_id: str) -> Optional[EntityRecord]:
        async with self._session_factory() as db:
            result = await db.execute(
                select(Entity).where(Entity.id == entity_id, Entity.deleted_at.is_(None))
            )
            entity = result.scalar_one_or_none()
            return _to_record(entity) if entity else None

    async def insert_entity(self, entity: EntityRecord) -> EntityRecord:
        async with self._session_factory() as db:
            row = Entity(**entity.model_dump())
            row.attributes = copy.deepcopy(entity.attributes)
            db.add(row)
            await db.commit()
            await db.refresh(row)
            _logger.info(
                "entity inserted | %s %r", row.entity_type, row.name,
                extra={"campaign_id": row.campaign_id, "entity_id": row.id},
            )
            return _to_record(row)

    async def insert_relationship(
        self,
        campaign_id: str,
        source_id: str,
        target_id: str,
        relationship_type: str,
        description: Optional[str] = None,
    ) -> RelationshipRecord:
        async with self._session_factory() as db:
            row = Relationship(
                id=new_id(),
                campaign_id=campaign_id,
                source_id=source_id,
                target_id=target_id,
                relationship_type=relationship_type,
                description=description,
            )
            db.add(row)
            await db.commit()
            return RelationshipRecord(
                id=row.id,
                campaign_id=row.campaign_id,
                source_id=row.source_id,
                target_id=row.target_id,
                relationship_type=row.relationship_type,
                description=row.description,
            )

    async def update_entity(self, entity_id: str, patch: dict[str, Any]) -> None:
        unknown = set(patch) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update fields: {sorted(unknown)}")

        async with self._session_factory() as db:
            result = await db.execute(
                select(Entity).where(Entity.id == entity_id, Entity.deleted_at.is_(None)).with_for_update()
            )
            entity = result.scalar_one_or_none()
            if entity is None:
                raise LookupError(f"Entity {entity_id} not found")

            for key, value in patch.items():
                setattr(entity, key, copy.deepcopy(value))
            if "attributes" in patch:
                flag_modified(entity, "attributes")
            await db.commit()

    async def get_codex(self, campaign_id: str) -> Optional[dict[str, Any]]:
        async with self._session_factory() as db:
            result = await db.execute(select(Codex).where(Codex.campaign_id == campaign_id))
            codex = result.scalar_one_or_none()
            return copy.deepcopy(codex.content) if codex and codex.content else None
