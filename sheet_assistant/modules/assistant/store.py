"""SQLAlchemy-backed reads and writes for the assistant.

Every call opens its own session so the context reads can run concurrently.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from sheet_assistant.db import session as db_session
from sheet_assistant.db.models import Campaign, CampaignMember, Character, CommunityExample, Note
from sheet_assistant.modules.patches.schemas import CharacterSnapshot
from sheet_assistant.modules.rag.retriever import CampaignSnapshot, CommunityExampleSnapshot, NoteSnapshot


MAX_NOTES = 120
MAX_COMMUNITY_EXAMPLES = 40

_COLUMN_BY_FIELD = {"class": "character_class"}
_WRITABLE_FIELDS = frozenset(
    {
        "name",
        "class",
        "race",
        "level",
        "experience",
        "armor_class",
        "speed",
        "current_hp",
        "max_hp",
        "character_type",
        "user_id",
        "stats",
        "details",
    }
)


class StoreError(RuntimeError):
    """A read or write against the campaign store failed."""


@dataclass(slots=True)
class MemberSnapshot:
    user_id: str
    role: str


def character_snapshot(row: Character) -> CharacterSnapshot:
    return CharacterSnapshot(
        id=row.id,
        name=row.name,
        user_id=row.user_id,
        class_name=row.character_class,
        race=row.race,
        level=row.level,
        experience=row.experience,
        armor_class=row.armor_class,
        speed=row.speed,
        current_hp=row.current_hp,
        max_hp=row.max_hp,
        character_type=row.character_type or "character",
        stats=dict(row.stats or {}),
        details=dict(row.details or {}),
    )


class CampaignStore:
    def get_member_role(self, campaign_id: str, user_id: str) -> str | None:
        try:
            with db_session.open_session() as db:
                return db.scalar(
                    select(CampaignMember.role).where(
                        CampaignMember.campaign_id == campaign_id, CampaignMember.user_id == user_id
                    )
                )
        except SQLAlchemyError as exc:
            raise StoreError(str(exc)) from exc

    def list_members(self, campaign_id: str) -> list[MemberSnapshot]:
        try:
            with db_session.open_session() as db:
                rows = db.scalars(select(CampaignMember).where(CampaignMember.campaign_id == campaign_id)).all()
                return [MemberSnapshot(user_id=row.user_id, role=row.role) for row in rows]
        except SQLAlchemyError as exc:
            raise StoreError(str(exc)) from exc

    def list_characters(self, campaign_id: str) -> list[CharacterSnapshot]:
        try:
            with db_session.open_session() as db:
                rows = db.scalars(
                    select(Character).where(Character.campaign_id == campaign_id).order_by(Character.created_at)
                ).all()
                return [character_snapshot(row) for row in rows]
        except SQLAlchemyError as exc:
            raise StoreError(str(exc)) from exc

    def get_character(self, campaign_id: str, character_id: str) -> CharacterSnapshot | None:
        try:
            with db_session.open_session() as db:
                row = db.scalar(
                    select(Character).where(Character.id == character_id, Character.campaign_id == campaign_id)
                )
                return character_snapshot(row) if row is not None else None
        except SQLAlchemyError as exc:
            raise StoreError(str(exc)) from exc

    def get_campaign(self, campaign_id: str) -> CampaignSnapshot | None:
        try:
            with db_session.open_session() as db:
                row = db.get(Campaign, campaign_id)
                if row is None:
                    return None
                return CampaignSnapshot(
                    id=row.id, name=row.name, description=row.description, invite_code=row.invite_code
                )
        except SQLAlchemyError as exc:
            raise StoreError(str(exc)) from exc

    def list_notes(self, campaign_id: str, limit: int = MAX_NOTES) -> list[NoteSnapshot]:
        try:
            with db_session.open_session() as db:
                rows = db.scalars(
                    select(Note)
                    .where(Note.campaign_id == campaign_id)
                    .order_by(Note.updated_at.desc())
                    .limit(limit)
                ).all()
                return [
                    NoteSnapshot(
                        id=row.id,
                        title=row.title,
                        content=row.content,
                        visibility=row.visibility,
                        author_id=row.author_id,
                    )
                    for row in rows
                ]
        except SQLAlchemyError as exc:
            raise StoreError(str(exc)) from exc

    def list_community_examples(self, limit: int = MAX_COMMUNITY_EXAMPLES) -> list[CommunityExampleSnapshot]:
        try:
            with db_session.open_session() as db:
                rows = db.scalars(
                    select(CommunityExample).order_by(CommunityExample.created_at.desc()).limit(limit)
                ).all()
                return [
                    CommunityExampleSnapshot(id=row.id, prompt=row.prompt, actions=list(row.actions or []))
                    for row in rows
                ]
        except SQLAlchemyError as exc:
            raise StoreError(str(exc)) from exc

    def create_character(self, campaign_id: str, payload: dict[str, Any]) -> str:
        row = Character(campaign_id=campaign_id)
        for key, value in payload.items():
            if key in _WRITABLE_FIELDS:
                setattr(row, _COLUMN_BY_FIELD.get(key, key), value)
        try:
            with db_session.open_session() as db:
                db.add(row)
                db.commit()
                return row.id
        except SQLAlchemyError as exc:
            raise StoreError(str(exc)) from exc

    def update_character(self, campaign_id: str, character_id: str, payload: dict[str, Any]) -> None:
        try:
            with db_session.open_session() as db:
                row = db.scalar(
                    select(Character).where(Character.id == character_id, Character.campaign_id == campaign_id)
                )
                if row is None:
                    raise StoreError("No existe ese personaje en la campaña.")
                for key, value in payload.items():
                    if key in _WRITABLE_FIELDS:
                        setattr(row, _COLUMN_BY_FIELD.get(key, key), value)
                db.commit()
        except SQLAlchemyError as exc:
            raise StoreError(str(exc)) from exc

    def add_community_example(self, prompt: str, actions: list[dict[str, Any]]) -> str:
        row = CommunityExample(prompt=prompt, actions=actions)
        try:
            with db_session.open_session() as db:
                db.add(row)
                db.commit()
                return row.id
        except SQLAlchemyError as exc:
            raise StoreError(str(exc)) from exc
