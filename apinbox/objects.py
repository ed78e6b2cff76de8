"""Storage for federated content objects (notes...)."""
import uuid
from dataclasses import dataclass

from loguru import logger
from sqlalchemy import delete
from sqlalchemy import or_
from sqlalchemy import select
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from apinbox import activitypub as ap
from apinbox import models
from apinbox.config import BASE_URL
from apinbox.utils.datetime import now


@dataclass
class CachedObject:
    created: bool
    object: models.Object


def allocate_object_id() -> str:
    return f"{BASE_URL}/ap/o/{uuid.uuid4().hex}"


async def get_object_by_id(
    db_session: AsyncSession,
    object_id: str,
) -> models.Object | None:
    return (
        await db_session.scalars(
            select(models.Object).where(models.Object.ap_id == object_id)
        )
    ).one_or_none()


async def get_object_by_original_id(
    db_session: AsyncSession,
    original_object_id: str,
) -> models.Object | None:
    return (
        await db_session.scalars(
            select(models.Object).where(
                models.Object.original_ap_id == original_object_id
            )
        )
    ).one_or_none()


async def cache_object(
    db_session: AsyncSession,
    raw_object: ap.RawObject,
    original_actor_id: str,
    original_object_id: str,
    is_local: bool = False,
) -> CachedObject:
    """Save the object if it's not already known under its original ID."""
    existing_object = await get_object_by_original_id(db_session, original_object_id)
    if existing_object:
        return CachedObject(created=False, object=existing_object)

    ap_object = ap.remove_context(raw_object)
    obj = models.Object(
        ap_id=original_object_id if is_local else allocate_object_id(),
        original_ap_id=original_object_id,
        original_actor_ap_id=original_actor_id,
        ap_type=ap.as_list(ap_object["type"])[0],
        ap_object=ap_object,
        is_local=is_local,
    )
    try:
        async with db_session.begin_nested():
            db_session.add(obj)
    except IntegrityError:
        # Cached by a concurrent delivery of the same object
        existing_object = await get_object_by_original_id(
            db_session, original_object_id
        )
        if existing_object is None:
            raise
        return CachedObject(created=False, object=existing_object)

    logger.info(f"Cached {obj.ap_type} {original_object_id} as {obj.ap_id}")
    return CachedObject(created=True, object=obj)


async def update_object(
    db_session: AsyncSession,
    raw_object: ap.RawObject,
    object_id: str,
) -> bool:
    result = await db_session.execute(
        update(models.Object)
        .where(models.Object.ap_id == object_id)
        .values(ap_object=ap.remove_context(raw_object), updated_at=now())
    )
    return result.rowcount == 1  # type: ignore


async def delete_object(
    db_session: AsyncSession,
    obj: models.Object,
) -> None:
    logger.info(f"Deleting {obj.ap_type} {obj.ap_id}")
    await db_session.execute(
        delete(models.NotificationDelivery).where(
            models.NotificationDelivery.notification_id.in_(
                select(models.Notification.id).where(
                    models.Notification.object_id == obj.id
                )
            )
        )
    )
    for model in [
        models.InboxEntry,
        models.OutboxEntry,
        models.ActorLike,
        models.ActorReblog,
        models.Notification,
    ]:
        await db_session.execute(delete(model).where(model.object_id == obj.id))

    await db_session.execute(
        delete(models.ActorReply).where(
            or_(
                models.ActorReply.object_id == obj.id,
                models.ActorReply.in_reply_to_object_id == obj.id,
            )
        )
    )
    await db_session.delete(obj)
    await db_session.flush()


async def fetch_remote_object(object_id: str) -> ap.RawObject:
    raw_object = await ap.fetch(object_id)

    # Some software return objects wrapped in a Create activity (like
    # python-federation)
    if ap.as_list(raw_object.get("type"))[0] == "Create" and isinstance(
        raw_object.get("object"), dict
    ):
        raw_object = raw_object["object"]

    if "type" not in raw_object:
        raise ap.NotAnObjectError(object_id)

    return raw_object
