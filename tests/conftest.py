"""Shared test fixtures: environment, an in-memory entity store and a scripted generator."""

import asyncio
import copy
import os
import uuid

# Settings are read on first import; point them at throwaway resources.
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ.setdefault("GOOGLE_API_KEY", "test-key")
os.environ["LOG_FILE"] = ""

import pytest

from worldforge.forge.errors import GenerationFailed
from worldforge.schemas import EntityRecord, RelationshipRecord


CAMPAIGN = "camp-1"


def make_entity(name, entity_type="npc", campaign_id=CAMPAIGN, **kwargs):
    return EntityRecord(
        id=kwargs.pop("id", None) or f"{entity_type}-{uuid.uuid4().hex[:8]}",
        campaign_id=campaign_id,
        name=name,
        entity_type=entity_type,
        **kwargs,
    )


class InMemoryEntityStore:
    """Dict-backed EntityStore with switches for simulating write failures."""

    def __init__(self, entities=None, codex=None):
        self.entities = {e.id: e for e in (entities or [])}
        self.relationships = []
        self.codex = codex
        self.fail_insert_names = set()
        self.fail_relationships = False
        self.fail_updates = False
        self.fail_list = False

    def add(self, entity):
        self.entities[entity.id] = entity
        return entity

    async def find_by_name(self, campaign_id, entity_type, name):
        key = name.strip().lower()
        for e in self.entities.values():
            if e.campaign_id == campaign_id and e.entity_type == entity_type and e.name.lower() == key:
                return e.model_copy(deep=True)
        return None

    async def search_by_name(self, campaign_id, name, limit=5):
        key = name.strip().lower()
        found = [
            e.model_copy(deep=True) for e in self.entities.values()
            if e.campaign_id == campaign_id and key in e.name.lower()
        ]
        return found[:limit]

    async def list_entities(self, campaign_id, entity_type=None):
        if self.fail_list:
            raise RuntimeError("database unavailable")
        return [
            e.model_copy(deep=True) for e in self.entities.values()
            if e.campaign_id == campaign_id and (entity_type is None or e.entity_type == entity_type)
        ]

    async def get_entity(self, entity_id):
        entity = self.entities.get(entity_id)
        return entity.model_copy(deep=True) if entity else None

    async def insert_entity(self, entity):
        if entity.name in self.fail_insert_names:
            raise RuntimeError(f"insert rejected for {entity.name}")
        self.entities[entity.id] = entity.model_copy(deep=True)
        return entity.model_copy(deep=True)

    async def insert_relationship(self, campaign_id, source_id, target_id, relationship_type, description=None):
        if self.fail_relationships:
            raise RuntimeError("relationship insert rejected")
        rel = RelationshipRecord(
            id=f"rel-{len(self.relationships) + 1}",
            campaign_id=campaign_id,
            source_id=source_id,
            target_id=target_id,
            relationship_type=relationship_type,
            description=description,
        )
        self.relationships.append(rel)
        return rel

    async def update_entity(self, entity_id, patch):
        if self.fail_updates:
            raise RuntimeError("update rejected")
        entity = self.entities.get(entity_id)
        if entity is None:
            raise LookupError(entity_id)
        self.entities[entity_id] = entity.model_copy(update=copy.deepcopy(patch))

    async def get_codex(self, campaign_id):
        return copy.deepcopy(self.codex)


class FakeGenerator:
    """ContentGenerator returning a fixed payload.

    ``gated=True`` makes every call wait until ``release()``.
    """

    def __init__(self, payload=None, error=None, gated=False):
        self.payload = payload
        self.error = error
        self.gated = gated
        self.calls = []
        self._gate = None

    @property
    def gate(self):
        if self._gate is None:
            self._gate = asyncio.Event()
        return self._gate

    def release(self):
        self.gate.set()

    async def generate(self, forge_type, input, context):
        self.calls.append((forge_type, input))
        if self.gated:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        if self.payload is None:
            raise GenerationFailed("Generation returned an empty response")
        return copy.deepcopy(self.payload)


GARETH_PAYLOAD = {
    "name": "Gareth",
    "race": "Human",
    "dm_slug": "A nervous fence who owes money to the Thieves' Guild.",
    "appearance": "Wiry and pale, with ink-stained fingers.",
    "personality": "Jumpy, but loyal once trust is earned.",
    "motivation": "Gareth wants to pay off his debt to the Thieves' Guild before winter.",
}


@pytest.fixture
def store():
    return InMemoryEntityStore()


@pytest.fixture
def gareth_payload():
    return copy.deepcopy(GARETH_PAYLOAD)
