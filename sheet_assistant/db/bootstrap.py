from sheet_assistant.db import session as db_session
from sheet_assistant.db.base import Base
from sheet_assistant.db.models import Campaign, CampaignMember, Character, CommunityExample, Note  # noqa: F401


def init_db() -> None:
    Base.metadata.create_all(bind=db_session.engine)


def drop_db() -> None:
    Base.metadata.drop_all(bind=db_session.engine)
