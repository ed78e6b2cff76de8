from loguru import logger
from sqlalchemy import select
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from apinbox import models
from apinbox.utils.datetime import now


async def get_following(
    db_session: AsyncSession,
    actor: models.Actor,
    target_actor: models.Actor,
) -> models.ActorFollowing | None:
    return (
        await db_session.scalars(
            select(models.ActorFollowing).where(
                models.ActorFollowing.actor_id == actor.id,
                models.ActorFollowing.target_actor_id == target_actor.id,
            )
        )
    ).one_or_none()


async def add_following(
    db_session: AsyncSession,
    actor: models.Actor,
    target_actor: models.Actor,
    target_actor_acct: str,
) -> bool:
    """Record a pending follow, returns False if the edge already exists."""
    if await get_following(db_session, actor, target_actor):
        logger.info(f"{actor.ap_id} already follows {target_actor.ap_id}")
        return False

    try:
        async with db_session.begin_nested():
            db_session.add(
                models.ActorFollowing(
                    actor_id=actor.id,
                    target_actor_id=target_actor.id,
                    target_actor_acct=target_actor_acct,
                    state=models.FollowStateEnum.PENDING,
                )
            )
    except IntegrityError:
        logger.info(f"{actor.ap_id} already follows {target_actor.ap_id}")
        return False

    return True


async def accept_following(
    db_session: AsyncSession,
    actor: models.Actor,
    target_actor: models.Actor,
) -> None:
    await db_session.execute(
        update(models.ActorFollowing)
        .where(
            models.ActorFollowing.actor_id == actor.id,
            models.ActorFollowing.target_actor_id == target_actor.id,
        )
        .values(state=models.FollowStateEnum.ACCEPTED, updated_at=now())
    )
