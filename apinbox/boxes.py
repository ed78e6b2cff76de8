"""Per-actor inbox/outbox views of objects."""
from datetime import datetime

from loguru import logger
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from apinbox import activitypub as ap
from apinbox import models
from apinbox.utils.datetime import now


async def add_object_in_outbox(
    db_session: AsyncSession,
    actor: models.Actor,
    obj: models.Object,
    published_at: datetime | None = None,
    target: str = ap.AS_PUBLIC,
) -> bool:
    try:
        async with db_session.begin_nested():
            db_session.add(
                models.OutboxEntry(
                    actor_id=actor.id,
                    object_id=obj.id,
                    target=target,
                    published_at=published_at or now(),
                )
            )
    except IntegrityError:
        logger.info(f"{obj.ap_id} is already in {actor.ap_id} outbox")
        return False

    return True


async def add_object_in_inbox(
    db_session: AsyncSession,
    actor: models.Actor,
    obj: models.Object,
) -> bool:
    try:
        async with db_session.begin_nested():
            db_session.add(models.InboxEntry(actor_id=actor.id, object_id=obj.id))
    except IntegrityError:
        logger.info(f"{obj.ap_id} is already in {actor.ap_id} inbox")
        return False

    return True
