from datetime import datetime
from typing import List, Optional
from sqlalchemy import String, DateTime, ForeignKey, Text, JSON, UniqueConstraint, Index
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.sql import func

class Base(DeclarativeBase):
    pass

class Campaign(Base):
    __tablename__ = "campaigns"

    id: Mapped[str] = mapped_column(String, primary_key=True, index=True) # Using UUID strings
    name: Mapped[str] = mapped_column(String, default="Untitled Campaign")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    entities: Mapped[List["Entity"]] = relationship("Entity", back_populates="campaign", cascade="all, delete-orphan")
    codex: Mapped[Optional["Codex"]] = relationship("Codex", back_populates="campaign", uselist=False, cascade="all, delete-orphan")


class Entity(Base):
    """A persisted campaign object (npc, location, item, faction, quest, ...).

    Stubs are ordinary entities whose ``attributes`` carry ``is_stub: true``
    plus provenance pointing at the entity and discovery they came from.
    """
    __tablename__ = "entities"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    campaign_id: Mapped[str] = mapped_column(ForeignKey("campaigns.id"), index=True)
    name: Mapped[str] = mapped_column(String)
    entity_type: Mapped[str] = mapped_column(String(32))
    sub_type: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    status: Mapped[str] = mapped_column(String(32), default="active")  # active | deceased | destroyed | ...
    summary: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    importance_tier: Mapped[str] = mapped_column(String(32), default="minor")
    visibility: Mapped[str] = mapped_column(String(32), default="dm_only")
    source_forge: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)

    attributes: Mapped[dict] = mapped_column(JSON, default=dict) # Type-specific payload (brain, soul, mechanics, objectives, history ...)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True) # Soft delete

    campaign: Mapped["Campaign"] = relationship("Campaign", back_populates="entities")

    __table_args__ = (
        Index("ix_entities_campaign_type", "campaign_id", "entity_type"),
    )


class Relationship(Base):
    __tablename__ = "relationships"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    campaign_id: Mapped[str] = mapped_column(ForeignKey("campaigns.id"), index=True)
    source_id: Mapped[str] = mapped_column(ForeignKey("entities.id"), index=True)
    target_id: Mapped[str] = mapped_column(ForeignKey("entities.id"), index=True)
    relationship_type: Mapped[str] = mapped_column(String(64)) # related_to | owned_by | located_in | member_of ...
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class Codex(Base):
    """Campaign-wide world rules: setting, themes, naming conventions, safety presets."""
    __tablename__ = "codex"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    campaign_id: Mapped[str] = mapped_column(ForeignKey("campaigns.id"))
    content: Mapped[dict] = mapped_column(JSON, default=dict)

    campaign: Mapped["Campaign"] = relationship("Campaign", back_populates="codex")

    __table_args__ = (
        UniqueConstraint("campaign_id", name="uix_codex_campaign"),
    )
