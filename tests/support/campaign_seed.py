from __future__ import annotations

from datetime import datetime, timedelta, timezone

from sheet_assistant.db import session as db_session
from sheet_assistant.db.models import Campaign, CampaignMember, Character, Note
from sheet_assistant.modules.assistant.store import CampaignStore
from sheet_assistant.modules.patches.schemas import CharacterSnapshot

CAMPAIGN_ID = "camp-1"
DM_ID = "dm-1"
PLAYER_ID = "player-1"
OTHER_PLAYER_ID = "player-2"
OUTSIDER_ID = "outsider-1"

KAELDEN_ID = "char-kaelden"
ARIA_ID = "char-aria"

HELMET_NAME = "Yelmo del Primer Forjador"


def seed_campaign() -> None:
    now = datetime.now(timezone.utc)
    with db_session.SessionLocal() as db:
        with db.begin():
            db.add(
                Campaign(
                    id=CAMPAIGN_ID,
                    name="La Marca del Este",
                    description="Frontera helada al norte del reino.",
                    invite_code="MARCA1",
                    created_at=now,
                )
            )
            db.add_all(
                [
                    CampaignMember(campaign_id=CAMPAIGN_ID, user_id=DM_ID, role="DM"),
                    CampaignMember(campaign_id=CAMPAIGN_ID, user_id=PLAYER_ID, role="PLAYER"),
                    CampaignMember(campaign_id=CAMPAIGN_ID, user_id=OTHER_PLAYER_ID, role="PLAYER"),
                ]
            )
            db.add_all(
                [
                    Character(
                        id=KAELDEN_ID,
                        campaign_id=CAMPAIGN_ID,
                        user_id=PLAYER_ID,
                        name="Kaelden",
                        character_class="Guerrero",
                        race="Humano",
                        level=3,
                        max_hp=28,
                        current_hp=28,
                        stats={"str": 16, "dex": 12, "con": 14, "int": 10, "wis": 11, "cha": 8},
                        details={
                            "items": [
                                {"id": "item-helmet", "name": HELMET_NAME, "category": "armor", "equipped": False},
                            ]
                        },
                        created_at=now,
                    ),
                    Character(
                        id=ARIA_ID,
                        campaign_id=CAMPAIGN_ID,
                        user_id=OTHER_PLAYER_ID,
                        name="Aria",
                        character_class="Mago",
                        race="Elfa",
                        level=4,
                        stats={"int": 17},
                        details={},
                        created_at=now + timedelta(seconds=1),
                    ),
                ]
            )
            db.add_all(
                [
                    Note(
                        id="note-public",
                        campaign_id=CAMPAIGN_ID,
                        author_id=DM_ID,
                        title="Rumores del puerto",
                        content="Los magos rojos compran hielo negro.",
                        visibility="CAMPAIGN",
                    ),
                    Note(
                        id="note-private",
                        campaign_id=CAMPAIGN_ID,
                        author_id=DM_ID,
                        title="Secreto del DM",
                        content="El alcalde es un doppelganger.",
                        visibility="PRIVATE",
                    ),
                ]
            )


def load_character(character_id: str) -> CharacterSnapshot | None:
    return CampaignStore().get_character(CAMPAIGN_ID, character_id)
