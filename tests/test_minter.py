"""Tests for stub minting and forged-entity persistence."""

import asyncio

import pytest

from conftest import CAMPAIGN, InMemoryEntityStore, make_entity
from worldforge.forge.errors import CommitFailed
from worldforge.forge.minter import (
    CommitContext,
    add_history_entry,
    build_entity_record,
    mint_stub_entities,
    save_forged_entity,
    stub_name,
)
from worldforge.forge.payload import build_generated_payload
from worldforge.schemas import CommitMetadata, Discovery, HistoryEntry


def _discovery(i, text, status="create_stub", kind="faction", **kwargs):
    return Discovery(
        id=f"d{i}", text=text, suggested_type=kind, status=status,
        context=f"... {text} ...", **kwargs,
    )


class TestStubName:

    def test_lowercase_article_dropped(self):
        assert stub_name("the Thieves' Guild") == "Thieves' Guild"

    def test_capitalized_article_kept(self):
        assert stub_name("The Drowned Rat") == "The Drowned Rat"


class TestMintStubEntities:

    def test_only_create_stub_discoveries_are_minted(self, store):
        discoveries = [
            _discovery(1, "the Thieves' Guild"),
            _discovery(2, "Saltmarsh", status="ignore", kind="location"),
            _discovery(3, "Lord Varen", status="pending", kind="npc"),
            _discovery(4, "Vex", status="link_existing", kind="npc", linked_entity_id="npc-1"),
        ]
        result = asyncio.run(mint_stub_entities(store, CAMPAIGN, discoveries, "npc"))
        assert result.errors == []
        [stub] = result.stubs
        assert stub.discovery_id == "d1"
        assert stub.name == "Thieves' Guild"
        assert stub.entity_type == "faction"

        saved = store.entities[stub.entity_id]
        assert saved.is_stub
        assert saved.importance_tier == "background"
        assert saved.attributes["needs_review"] is True
        assert saved.attributes["source_discovery_id"] == "d1"
        assert saved.attributes["stub_context"] == "... the Thieves' Guild ..."
        assert saved.attributes["history"][0]["event"] == "stub_created"

    def test_source_field_recorded(self, store):
        discoveries = [_discovery(1, "Lord Varen", kind="npc", source_field="brain.key_members")]
        result = asyncio.run(mint_stub_entities(store, CAMPAIGN, discoveries, "faction"))
        saved = store.entities[result.stubs[0].entity_id]
        assert saved.attributes["source_field"] == "brain.key_members"

    def test_failures_are_collected_not_raised(self, store):
        store.fail_insert_names = {"Broken Tower"}
        discoveries = [
            _discovery(1, "Broken Tower", kind="location"),
            _discovery(2, "Iron Circle"),
        ]
        result = asyncio.run(mint_stub_entities(store, CAMPAIGN, discoveries, "npc"))
        assert [s.name for s in result.stubs] == ["Iron Circle"]
        assert len(result.errors) == 1
        assert "Broken Tower" in result.errors[0]


class TestBuildEntityRecord:

    def test_npc_columns(self, gareth_payload):
        record = build_entity_record(CAMPAIGN, "npc", "Gareth", gareth_payload, [])
        assert record.sub_type == "Human"
        assert record.summary == gareth_payload["dm_slug"]
        assert record.description.startswith("**Appearance:** Wiry and pale")
        assert "**Motivation:**" in record.description
        assert record.attributes["race"] == "Human"
        assert "name" not in record.attributes
        assert record.source_forge == "npc"
        assert record.importance_tier == "minor"

    def test_item_columns(self):
        raw = {
            "name": "Lantern of Echoes",
            "item_type": "wondrous item",
            "public_description": "A brass lantern.",
            "secret_description": "It remembers every voice.",
        }
        record = build_entity_record(CAMPAIGN, "item", raw["name"], raw, [])
        assert record.sub_type == "wondrous item"
        assert record.summary == "A brass lantern."
        assert record.description == "It remembers every voice."

    def test_nested_soul_fields(self):
        raw = {"soul": {"title": "Blackwater Keep", "location_type": "fortress", "summary": "A drowned keep."}}
        record = build_entity_record(CAMPAIGN, "location", "Blackwater Keep", raw, [])
        assert record.sub_type == "fortress"
        assert record.summary == "A drowned keep."

    def test_quest_objectives_normalized(self):
        raw = {
            "name": "The Sunken Bell",
            "objectives": [
                {"id": "a", "title": "Find the bell", "state": "locked"},
                {"id": "b", "title": "Ring it", "parent_id": "a", "state": "active"},
                {"title": "Optional detour", "type": "optional", "state": "completed"},
            ],
        }
        record = build_entity_record(CAMPAIGN, "quest", raw["name"], raw, [])
        states = {o["id"]: o["state"] for o in record.attributes["objectives"]}
        assert states == {"a": "active", "b": "locked", "obj_3": "completed"}

    def test_history_appended(self):
        raw = {"name": "X", "history": [{"event": "edited"}]}
        record = build_entity_record(CAMPAIGN, "creature", "X", raw, [{"event": "forged"}])
        assert [h["event"] for h in record.attributes["history"]] == ["edited", "forged"]


class TestSaveForgedEntity:

    def _save(self, store, payload, context, forge_type="npc"):
        return asyncio.run(save_forged_entity(store, CAMPAIGN, forge_type, payload, context))

    def test_links_stubs_and_backfills_source(self, store, gareth_payload):
        async def scenario():
            minted = await mint_stub_entities(store, CAMPAIGN, [_discovery(1, "the Thieves' Guild")], "npc")
            payload = build_generated_payload("npc", gareth_payload)
            persisted = await save_forged_entity(
                store, CAMPAIGN, "npc", payload, CommitContext(stubs=minted.stubs),
            )
            return minted, persisted

        minted, persisted = asyncio.run(scenario())
        stub_id = minted.stubs[0].entity_id
        [rel] = persisted.relationships
        assert rel.source_id == persisted.entity.id
        assert rel.target_id == stub_id
        assert rel.relationship_type == "related_to"

        stub = store.entities[stub_id]
        assert stub.attributes["source_entity_id"] == persisted.entity.id
        assert stub.attributes["source_entity_name"] == "Gareth"
        assert stub.attributes["history"][0]["note"] == "Discovered in Gareth"
        assert persisted.entity.attributes["history"][0]["event"] == "forged"

    def test_link_existing_and_metadata_relationships(self, store, gareth_payload):
        guild = store.add(make_entity("Thieves' Guild", "faction"))
        tavern = store.add(make_entity("Drowned Rat", "location"))
        discoveries = [
            _discovery(1, "the Thieves' Guild", status="link_existing", matched_entity_id=guild.id),
            _discovery(2, "Old Friend", status="link_existing", kind="npc", linked_entity_id="npc-77"),
            _discovery(3, "Nobody", status="ignore", matched_entity_id="npc-99"),
        ]
        context = CommitContext(
            discoveries=discoveries,
            metadata=CommitMetadata(location_id=tavern.id, faction_id=guild.id),
        )
        persisted = self._save(store, build_generated_payload("npc", gareth_payload), context)
        rels = [(r.target_id, r.relationship_type) for r in persisted.relationships]
        assert rels == [
            (guild.id, "related_to"),
            ("npc-77", "related_to"),
            (tavern.id, "located_in"),
            (guild.id, "member_of"),
        ]

    def test_relationship_failures_are_collected(self, store, gareth_payload):
        store.fail_relationships = True
        context = CommitContext(metadata=CommitMetadata(owner_id="npc-1"))
        persisted = self._save(store, build_generated_payload("npc", gareth_payload), context)
        assert persisted.entity.name == "Gareth"
        assert persisted.relationships == []
        assert len(persisted.errors) == 1

    def test_missing_name_fails(self, store):
        payload = build_generated_payload("npc", {"summary": "nameless"})
        with pytest.raises(CommitFailed):
            self._save(store, payload, CommitContext())

    def test_insert_failure_fails(self, store, gareth_payload):
        store.fail_insert_names = {"Gareth"}
        with pytest.raises(CommitFailed):
            self._save(store, build_generated_payload("npc", gareth_payload), CommitContext())


class TestAddHistoryEntry:

    def test_appends(self, store):
        entity = store.add(make_entity("Vex", "npc", attributes={"history": [{"event": "forged"}]}))
        asyncio.run(add_history_entry(store, entity.id, HistoryEntry(event="edited", note="renamed")))
        history = store.entities[entity.id].attributes["history"]
        assert [h["event"] for h in history] == ["forged", "edited"]
        assert history[1]["note"] == "renamed"

    def test_unknown_entity(self, store):
        with pytest.raises(LookupError):
            asyncio.run(add_history_entry(store, "missing", HistoryEntry(event="edited")))
