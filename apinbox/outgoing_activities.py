from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from apinbox import activitypub as ap
from apinbox import models
from apinbox.key import Key
from apinbox.objects import allocate_object_id


def build_accept_activity(
    from_actor: models.Actor,
    follow_activity: ap.RawObject,
) -> ap.RawObject:
    return {
        "@context": ap.AS_CTX,
        "id": allocate_object_id(),
        "type": "Accept",
        "actor": from_actor.ap_id,
        "object": ap.remove_context(follow_activity),
    }


async def deliver_to_actor(
    db_session: AsyncSession,
    signing_key: Key,
    from_actor: models.Actor,
    to_actor: models.Actor,
    payload: ap.RawObject,
) -> models.OutgoingActivity:
    """Queue `payload` for delivery to the inbox of `to_actor`.

    The transport signs the request with `signing_key` and retries failed
    deliveries.
    """
    if signing_key.owner != from_actor.ap_id:
        raise ValueError(
            f"Key {signing_key.key_id()} cannot sign for {from_actor.ap_id}"
        )

    outgoing_activity = models.OutgoingActivity(
        recipient=to_actor.inbox_url,
        from_actor_id=from_actor.id,
        to_actor_id=to_actor.id,
        signing_key_id=signing_key.key_id(),
        ap_object=payload,
    )
    db_session.add(outgoing_activity)
    await db_session.flush()
    await db_session.refresh(outgoing_activity)
    logger.info(
        f"Queued {payload.get('type')} from {from_actor.ap_id} "
        f"to {outgoing_activity.recipient}"
    )
    return outgoing_activity
