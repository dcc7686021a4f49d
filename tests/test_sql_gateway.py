"""SqlEntityStore against an in-memory SQLite database (aiosqlite)."""

import asyncio
from datetime import datetime, timezone

import pytest
from sqlalchemy import select

from conftest import CAMPAIGN, make_entity
from worldforge.database import build_engine, build_session_factory, create_tables
from worldforge.forge.gateway import SqlEntityStore
from worldforge.models import Campaign, Codex, Entity, Relationship

DATABASE_URL = "sqlite+aiosqlite:///:memory:"


def run_with_store(test):
    """Create a fresh database, seed one campaign, and run ``test(store, session_factory)``."""

    async def runner():
        engine = build_engine(DATABASE_URL)
        try:
            await create_tables(engine)
            factory = build_session_factory(engine)
            async with factory() as db:
                db.add(Campaign(id=CAMPAIGN, name="Test Campaign"))
                db.add(Campaign(id="other", name="Other Campaign"))
                await db.commit()
            return await test(SqlEntityStore(factory), factory)
        finally:
            await engine.dispose()

    return asyncio.run(runner())


class TestSqlEntityStore:

    def test_insert_and_get_round_trip(self):
        async def test(store, factory):
            record = make_entity("Gareth", "npc", attributes={"race": "Human", "history": []})
            saved = await store.insert_entity(record)
            fetched = await store.get_entity(saved.id)
            return record, fetched

        record, fetched = run_with_store(test)
        assert fetched.id == record.id
        assert fetched.name == "Gareth"
        assert fetched.attributes == {"race": "Human", "history": []}

    def test_find_by_name_is_case_insensitive_and_typed(self):
        async def test(store, factory):
            await store.insert_entity(make_entity("Thieves' Guild", "faction"))
            return (
                await store.find_by_name(CAMPAIGN, "faction", "thieves' GUILD"),
                await store.find_by_name(CAMPAIGN, "npc", "Thieves' Guild"),
                await store.find_by_name("other", "faction", "Thieves' Guild"),
            )

        found, wrong_type, wrong_campaign = run_with_store(test)
        assert found.name == "Thieves' Guild"
        assert wrong_type is None
        assert wrong_campaign is None

    def test_search_and_list(self):
        async def test(store, factory):
            await store.insert_entity(make_entity("Thieves' Guild", "faction"))
            await store.insert_entity(make_entity("Guild Hall", "location"))
            await store.insert_entity(make_entity("Gareth", "npc"))
            await store.insert_entity(make_entity("100% Guild", "faction", campaign_id="other"))
            return (
                await store.search_by_name(CAMPAIGN, "guild"),
                await store.search_by_name(CAMPAIGN, "%"),
                await store.list_entities(CAMPAIGN),
                await store.list_entities(CAMPAIGN, "faction"),
            )

        searched, wildcard, everything, factions = run_with_store(test)
        assert [e.name for e in searched] == ["Guild Hall", "Thieves' Guild"]
        assert wildcard == []
        assert len(everything) == 3
        assert [e.name for e in factions] == ["Thieves' Guild"]

    def test_soft_deleted_entities_are_invisible(self):
        async def test(store, factory):
            saved = await store.insert_entity(make_entity("Ghost", "npc"))
            async with factory() as db:
                row = await db.get(Entity, saved.id)
                row.deleted_at = datetime.now(timezone.utc)
                await db.commit()
            return (
                await store.get_entity(saved.id),
                await store.find_by_name(CAMPAIGN, "npc", "Ghost"),
                await store.list_entities(CAMPAIGN),
            )

        fetched, found, listed = run_with_store(test)
        assert fetched is None
        assert found is None
        assert listed == []

    def test_update_entity_attributes(self):
        async def test(store, factory):
            saved = await store.insert_entity(make_entity("Vex", "npc", attributes={"history": []}))
            attributes = dict(saved.attributes)
            attributes["history"] = [{"event": "edited"}]
            await store.update_entity(saved.id, {"attributes": attributes, "status": "deceased"})
            return await store.get_entity(saved.id)

        updated = run_with_store(test)
        assert updated.attributes["history"] == [{"event": "edited"}]
        assert updated.status == "deceased"

    def test_update_rejects_unknown_fields_and_entities(self):
        async def test(store, factory):
            saved = await store.insert_entity(make_entity("Vex", "npc"))
            with pytest.raises(ValueError):
                await store.update_entity(saved.id, {"campaign_id": "other"})
            with pytest.raises(LookupError):
                await store.update_entity("missing", {"status": "deceased"})

        run_with_store(test)

    def test_insert_relationship(self):
        async def test(store, factory):
            a = await store.insert_entity(make_entity("Gareth", "npc"))
            b = await store.insert_entity(make_entity("Thieves' Guild", "faction"))
            rel = await store.insert_relationship(CAMPAIGN, a.id, b.id, "member_of", "joined young")
            async with factory() as db:
                rows = (await db.execute(select(Relationship))).scalars().all()
            return a, b, rel, rows

        a, b, rel, rows = run_with_store(test)
        assert (rel.source_id, rel.target_id, rel.relationship_type) == (a.id, b.id, "member_of")
        assert [r.id for r in rows] == [rel.id]

    def test_codex(self):
        async def test(store, factory):
            missing = await store.get_codex(CAMPAIGN)
            async with factory() as db:
                db.add(Codex(id="codex-1", campaign_id=CAMPAIGN, content={"themes": ["grimdark"]}))
                await db.commit()
            return missing, await store.get_codex(CAMPAIGN)

        missing, codex = run_with_store(test)
        assert missing is None
        assert codex == {"themes": ["grimdark"]}
