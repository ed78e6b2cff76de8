"""Replies, likes and reblogs recorded for federated objects."""
from typing import Any

from loguru import logger
from sqlalchemy import func
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from apinbox import models


async def _insert_if_absent(db_session: AsyncSession, row: Any) -> bool:
    try:
        async with db_session.begin_nested():
            db_session.add(row)
    except IntegrityError:
        logger.info(f"{row.__tablename__} already exists")
        return False

    return True


async def insert_reply(
    db_session: AsyncSession,
    actor: models.Actor,
    obj: models.Object,
    in_reply_to_object: models.Object,
) -> bool:
    return await _insert_if_absent(
        db_session,
        models.ActorReply(
            actor_id=actor.id,
            object_id=obj.id,
            in_reply_to_object_id=in_reply_to_object.id,
        ),
    )


async def has_like(
    db_session: AsyncSession,
    actor: models.Actor,
    obj: models.Object,
) -> bool:
    return (
        await db_session.scalar(
            select(func.count(models.ActorLike.id)).where(
                models.ActorLike.actor_id == actor.id,
                models.ActorLike.object_id == obj.id,
            )
        )
    ) > 0


async def insert_like(
    db_session: AsyncSession,
    actor: models.Actor,
    obj: models.Object,
) -> bool:
    return await _insert_if_absent(
        db_session,
        models.ActorLike(actor_id=actor.id, object_id=obj.id),
    )


async def has_reblog(
    db_session: AsyncSession,
    actor: models.Actor,
    obj: models.Object,
) -> bool:
    return (
        await db_session.scalar(
            select(func.count(models.ActorReblog.id)).where(
                models.ActorReblog.actor_id == actor.id,
                models.ActorReblog.object_id == obj.id,
            )
        )
    ) > 0


async def create_reblog(
    db_session: AsyncSession,
    actor: models.Actor,
    obj: models.Object,
) -> bool:
    return await _insert_if_absent(
        db_session,
        models.ActorReblog(actor_id=actor.id, object_id=obj.id),
    )
