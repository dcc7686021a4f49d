"""Campaign, codex, entity listing and entity history endpoints."""

from __future__ import annotations

import uuid
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import flag_modified

from worldforge.database import get_db
from worldforge.forge.gateway import EntityStore
from worldforge.forge.minter import add_history_entry
from worldforge.models import Campaign, Codex
from worldforge.routers.forge import get_store
from worldforge.schemas import EntityRecord, HistoryEntry
from worldforge.utils.logging_config import get_logger

logger = get_logger("worldforge.routers.campaigns")

router = APIRouter()


class CreateCampaignRequest(BaseModel):
    name: str = "Untitled Campaign"


class CampaignResponse(BaseModel):
    id: str
    name: str
    created_at: str


class CodexRequest(BaseModel):
    content: Dict[str, Any]


@router.post("/campaigns", response_model=CampaignResponse, status_code=201)
async def create_campaign(request: CreateCampaignRequest, db: AsyncSession = Depends(get_db)):
    campaign = Campaign(id=str(uuid.uuid4()), name=request.name)
    db.add(campaign)
    await db.commit()
    await db.refresh(campaign)
    logger.info("campaign created", extra={"campaign_id": campaign.id})
    return {
        "id": campaign.id,
        "name": campaign.name,
        "created_at": campaign.created_at.isoformat(),
    }


@router.put("/campaigns/{campaign_id}/codex")
async def put_codex(campaign_id: str, request: CodexRequest, db: AsyncSession = Depends(get_db)):
    campaign = await db.get(Campaign, campaign_id)
    if campaign is None:
        raise HTTPException(status_code=404, detail="Campaign not found")

    result = await db.execute(select(Codex).where(Codex.campaign_id == campaign_id))
    codex = result.scalar_one_or_none()
    if codex is None:
        codex = Codex(id=str(uuid.uuid4()), campaign_id=campaign_id, content=request.content)
        db.add(codex)
    else:
        codex.content = request.content
        flag_modified(codex, "content")
    await db.commit()
    return {"campaign_id": campaign_id, "content": request.content}


@router.get("/campaigns/{campaign_id}/entities", response_model=List[EntityRecord])
async def list_entities(
    campaign_id: str,
    entity_type: Optional[str] = None,
    store: EntityStore = Depends(get_store),
):
    return await store.list_entities(campaign_id, entity_type)


@router.post("/entities/{entity_id}/history", response_model=EntityRecord)
async def append_history(entity_id: str, entry: HistoryEntry, store: EntityStore = Depends(get_store)):
    try:
        await add_history_entry(store, entity_id, entry)
    except LookupError:
        raise HTTPException(status_code=404, detail="Entity not found")
    except Exception as e:
        logger.error("history append failed | %s: %s", entity_id, e, extra={"entity_id": entity_id})
        raise HTTPException(status_code=502, detail=f"Could not save history entry: {e}")
    return await store.get_entity(entity_id)
