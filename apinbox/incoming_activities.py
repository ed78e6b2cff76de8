"""Process activities received in the inbox of local actors."""
from dataclasses import dataclass
from typing import Awaitable
from typing import Callable
from typing import Union
from urllib.parse import urlparse

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from apinbox import activitypub as ap
from apinbox import config
from apinbox import models
from apinbox.actor import RemoteActor
from apinbox.actor import get_actor_by_id
from apinbox.actor import get_or_fetch_actor
from apinbox.actor import update_actor_if_needed
from apinbox.boxes import add_object_in_inbox
from apinbox.boxes import add_object_in_outbox
from apinbox.errors import ActivityError
from apinbox.errors import AuthorizationMismatchError
from apinbox.errors import MalformedActivityError
from apinbox.errors import UnknownEntityError
from apinbox.errors import UnsupportedTypeError
from apinbox.follows import accept_following
from apinbox.follows import add_following
from apinbox.interactions import create_reblog
from apinbox.interactions import has_like
from apinbox.interactions import has_reblog
from apinbox.interactions import insert_like
from apinbox.interactions import insert_reply
from apinbox.key import get_signing_key
from apinbox.notifications import create_notification
from apinbox.notifications import is_notification_enabled
from apinbox.notifications import send_notification
from apinbox.objects import CachedObject
from apinbox.objects import cache_object
from apinbox.objects import delete_object
from apinbox.objects import fetch_remote_object
from apinbox.objects import get_object_by_id
from apinbox.objects import get_object_by_original_id
from apinbox.objects import update_object
from apinbox.outgoing_activities import build_accept_activity
from apinbox.outgoing_activities import deliver_to_actor
from apinbox.recipients import resolve_recipients
from apinbox.utils.datetime import now
from apinbox.utils.datetime import parse_isoformat
from apinbox.utils.url import InvalidURLError
from apinbox.utils.url import is_hostname_blocked

_UPDATABLE_ACTOR_TYPES = ["Person", "Service"]
_DELETABLE_OBJECT_TYPES = ["Note"]


@dataclass(frozen=True)
class Processed:
    pass


@dataclass(frozen=True)
class Dropped:
    reason: str


@dataclass(frozen=True)
class Failed:
    error: Exception


HandlerResult = Union[Processed, Dropped, Failed]

_Handler = Callable[[AsyncSession, ap.Activity], Awaitable[HandlerResult]]


async def _cache_object(
    db_session: AsyncSession,
    raw_object: ap.RawObject,
    original_actor_id: str,
    original_object_id: str,
) -> CachedObject | None:
    """Returns None if the object type is not supported."""
    ap_type = ap.as_list(raw_object.get("type"))[0]
    if ap_type not in config.SUPPORTED_OBJECT_TYPES:
        logger.warning(f"Unsupported object type {ap_type}")
        return None

    return await cache_object(
        db_session, raw_object, original_actor_id, original_object_id
    )


def _object_owner(raw_object: ap.RawObject, default: str) -> str:
    try:
        return ap.get_actor_id(raw_object)
    except (KeyError, IndexError, ValueError):
        return default


async def _notify(
    db_session: AsyncSession,
    notification_type: models.NotificationType,
    to_actor: models.Actor,
    from_actor: models.Actor,
    obj: models.Object | None = None,
) -> models.Notification | None:
    """Create and send a notification for a local actor.

    A failure is logged and never undoes the side effects already recorded
    for the activity.
    """
    if not to_actor.is_local:
        return None

    if not is_notification_enabled(notification_type):
        logger.info(f"{notification_type.value} notifications are disabled")
        return None

    try:
        async with db_session.begin_nested():
            notif = await create_notification(
                db_session, notification_type, to_actor, from_actor, obj
            )
            await send_notification(db_session, notif, from_actor, to_actor)
    except Exception:
        logger.exception(
            f"Failed to notify {to_actor.ap_id} of {notification_type.value}"
        )
        return None

    return notif


async def _handle_update_activity(
    db_session: AsyncSession,
    activity: ap.Activity,
) -> HandlerResult:
    wrapped_object = activity.require_complex_object()
    actor_id = ap.get_actor_as_id(activity)
    object_id = ap.get_object_as_id(activity)

    ap_type = ap.as_list(wrapped_object.get("type"))[0]
    if ap_type in _UPDATABLE_ACTOR_TYPES:
        existing_actor = await get_actor_by_id(db_session, object_id)
        if existing_actor is None:
            return Failed(UnknownEntityError(f"actor {object_id} does not exist"))

        if existing_actor.ap_id != actor_id:
            return Failed(AuthorizationMismatchError(actor_id, existing_actor.ap_id))

        try:
            updated_actor = RemoteActor(wrapped_object)
            await update_actor_if_needed(db_session, existing_actor, updated_actor)
        except (KeyError, ValueError) as exc:
            return Failed(MalformedActivityError(f"invalid actor update: {exc}"))

        return Processed()

    if ap_type not in config.SUPPORTED_OBJECT_TYPES:
        raise UnsupportedTypeError(f"cannot update objects of type {ap_type}")

    existing_object = await get_object_by_original_id(db_session, object_id)
    if existing_object is None:
        return Failed(UnknownEntityError(f"object {object_id} does not exist"))

    if actor_id != existing_object.original_actor_ap_id:
        return Failed(
            AuthorizationMismatchError(actor_id, existing_object.original_actor_ap_id)
        )

    if not await update_object(db_session, wrapped_object, existing_object.ap_id):
        return Failed(
            UnknownEntityError(f"could not update object {existing_object.ap_id}")
        )

    return Processed()


async def _record_reply(
    db_session: AsyncSession,
    actor: models.Actor,
    obj: models.Object,
    in_reply_to: str,
) -> None:
    in_reply_to_object = await get_object_by_original_id(db_session, in_reply_to)
    if in_reply_to_object is None:
        try:
            remote_object = await fetch_remote_object(in_reply_to)
            cached = await _cache_object(
                db_session,
                remote_object,
                _object_owner(remote_object, actor.ap_id),
                in_reply_to,
            )
        except (ap.FetchError, InvalidURLError) as exc:
            logger.warning(f"Failed to fetch parent {in_reply_to}: {exc}")
            return None

        if cached is None:
            return None
        in_reply_to_object = cached.object

    await insert_reply(db_session, actor, obj, in_reply_to_object)


# https://www.w3.org/TR/activitypub/#create-activity-inbox
async def _handle_create_activity(
    db_session: AsyncSession,
    activity: ap.Activity,
) -> HandlerResult:
    raw_object = activity.require_complex_object()
    actor_id = ap.get_actor_as_id(activity)
    object_id = ap.get_object_as_id(activity)

    target = activity.to[0] if activity.to else ap.AS_PUBLIC

    from_actor = await get_or_fetch_actor(db_session, actor_id)

    cached = await _cache_object(db_session, raw_object, actor_id, object_id)
    if cached is None:
        return Dropped(f"unsupported object type for {object_id}")

    if not cached.created:
        return Dropped(f"{object_id} already exists, probably a duplicated message")

    obj = cached.object

    if obj.in_reply_to:
        await _record_reply(db_session, from_actor, obj, obj.in_reply_to)

    published_at = now()
    if activity.published:
        try:
            published_at = parse_isoformat(activity.published)
        except (TypeError, ValueError):
            logger.warning(f"Invalid published date {activity.published!r}")

    # Make the object visible to the other actors of this instance
    await add_object_in_outbox(db_session, from_actor, obj, published_at, target)

    recipients = await resolve_recipients(db_session, activity.to, activity.cc)
    for recipient in recipients.direct:
        try:
            await add_object_in_inbox(db_session, recipient, obj)
        except Exception:
            logger.exception(f"Failed to add {obj.ap_id} to {recipient.ap_id} inbox")
            continue

        await _notify(
            db_session,
            models.NotificationType.MENTION,
            recipient,
            from_actor,
            obj,
        )

    # TODO: deliver to collection members once they get a home timeline
    for member in recipients.from_collections:
        logger.info(f"Not delivering {obj.ap_id} to collection member {member.ap_id}")

    return Processed()


# https://www.w3.org/TR/activitystreams-vocabulary/#dfn-accept
async def _handle_accept_activity(
    db_session: AsyncSession,
    activity: ap.Activity,
) -> HandlerResult:
    follow_activity = activity.require_complex_object()
    actor_id = ap.get_actor_as_id(activity)

    if not follow_activity.get("actor"):
        return Dropped("Accept is missing the follow request actor")
    try:
        follower_id = ap.get_id(follow_activity["actor"])
    except (KeyError, ValueError) as exc:
        raise MalformedActivityError(
            f"invalid follow request actor: {exc!r}"
        ) from exc

    follower = await get_actor_by_id(db_session, follower_id)
    if follower is None:
        return Dropped(f"actor {follower_id} not found")

    followee = await get_or_fetch_actor(db_session, actor_id)
    await accept_following(db_session, follower, followee)
    return Processed()


# https://www.w3.org/TR/activitystreams-vocabulary/#dfn-follow
async def _handle_follow_activity(
    db_session: AsyncSession,
    activity: ap.Activity,
) -> HandlerResult:
    object_id = ap.get_object_as_id(activity)
    actor_id = ap.get_actor_as_id(activity)

    receiver = await get_actor_by_id(db_session, object_id)
    if receiver is None or not receiver.is_local:
        return Dropped(f"actor {object_id} not found")

    follower = await get_or_fetch_actor(db_session, actor_id)
    receiver_acct = f"{receiver.preferred_username}@{config.DOMAIN}"

    is_new_follower = await add_following(
        db_session, follower, receiver, receiver_acct
    )

    # Automatically send the Accept reply
    await accept_following(db_session, follower, receiver)
    reply = build_accept_activity(receiver, activity.to_raw())
    signing_key = get_signing_key(receiver)
    await deliver_to_actor(db_session, signing_key, receiver, follower, reply)

    if is_new_follower:
        await _notify(
            db_session,
            models.NotificationType.FOLLOW,
            receiver,
            follower,
        )

    return Processed()


# https://www.w3.org/TR/activitystreams-vocabulary/#dfn-announce
async def _handle_announce_activity(
    db_session: AsyncSession,
    activity: ap.Activity,
) -> HandlerResult:
    actor_id = ap.get_actor_as_id(activity)
    object_id = ap.get_object_as_id(activity)

    obj = await get_object_by_id(
        db_session, object_id
    ) or await get_object_by_original_id(db_session, object_id)
    if obj is None:
        # Object doesn't exists locally, we'll need to download it
        try:
            remote_object = await fetch_remote_object(object_id)
            cached = await _cache_object(
                db_session,
                remote_object,
                _object_owner(remote_object, actor_id),
                object_id,
            )
        except (ap.FetchError, InvalidURLError) as exc:
            return Dropped(f"failed to retrieve object {object_id}: {exc}")

        if cached is None:
            return Dropped(f"unsupported object type for {object_id}")
        obj = cached.object

    from_actor = await get_or_fetch_actor(db_session, actor_id)

    if await has_reblog(db_session, from_actor, obj):
        return Dropped("probably duplicated Announce message")

    if not obj.original_actor_ap_id:
        return Dropped(f"{obj.ap_id} has no owner")

    # The author of a boosted remote note may not be known yet
    target_actor = await get_or_fetch_actor(db_session, obj.original_actor_ap_id)

    if not await create_reblog(db_session, from_actor, obj):
        return Dropped("probably duplicated Announce message")

    await _notify(
        db_session,
        models.NotificationType.REBLOG,
        target_actor,
        from_actor,
        obj,
    )
    return Processed()


# https://www.w3.org/TR/activitystreams-vocabulary/#dfn-like
async def _handle_like_activity(
    db_session: AsyncSession,
    activity: ap.Activity,
) -> HandlerResult:
    actor_id = ap.get_actor_as_id(activity)
    object_id = ap.get_object_as_id(activity)

    obj = await get_object_by_id(
        db_session, object_id
    ) or await get_object_by_original_id(db_session, object_id)
    if obj is None or not obj.original_actor_ap_id:
        return Dropped(f"unknown object {object_id}")

    from_actor = await get_or_fetch_actor(db_session, actor_id)
    target_actor = await get_actor_by_id(db_session, obj.original_actor_ap_id)
    if target_actor is None:
        return Dropped(f"object actor {obj.original_actor_ap_id} not found")

    if await has_like(db_session, from_actor, obj):
        return Dropped("probably duplicated Like message")

    if not await insert_like(db_session, from_actor, obj):
        return Dropped("probably duplicated Like message")

    await _notify(
        db_session,
        models.NotificationType.FAVOURITE,
        target_actor,
        from_actor,
        obj,
    )
    return Processed()


# https://www.w3.org/TR/activitystreams-vocabulary/#dfn-delete
async def _handle_delete_activity(
    db_session: AsyncSession,
    activity: ap.Activity,
) -> HandlerResult:
    object_id = ap.get_object_as_id(activity)
    actor_id = ap.get_actor_as_id(activity)

    obj = await get_object_by_original_id(db_session, object_id)
    if obj is None or not obj.original_actor_ap_id:
        return Dropped(f"unknown object {object_id} or missing owner")

    if actor_id != obj.original_actor_ap_id:
        logger.error(
            f"Unauthorized Delete of {object_id} ({actor_id} vs "
            f"{obj.original_actor_ap_id})"
        )
        return Dropped("Delete actor does not own the object")

    if obj.ap_type not in _DELETABLE_OBJECT_TYPES:
        raise UnsupportedTypeError(f"cannot delete objects of type {obj.ap_type}")

    await delete_object(db_session, obj)
    return Processed()


_HANDLERS: dict[ap.ActivityTypeEnum, _Handler] = {
    ap.ActivityTypeEnum.UPDATE: _handle_update_activity,
    ap.ActivityTypeEnum.CREATE: _handle_create_activity,
    ap.ActivityTypeEnum.ACCEPT: _handle_accept_activity,
    ap.ActivityTypeEnum.FOLLOW: _handle_follow_activity,
    ap.ActivityTypeEnum.ANNOUNCE: _handle_announce_activity,
    ap.ActivityTypeEnum.LIKE: _handle_like_activity,
    ap.ActivityTypeEnum.DELETE: _handle_delete_activity,
}


def _get_handler(activity_type: str) -> _Handler:
    try:
        return _HANDLERS[ap.ActivityTypeEnum(activity_type)]
    except ValueError:
        raise UnsupportedTypeError(f"unsupported activity {activity_type}")


async def _dispatch(
    db_session: AsyncSession,
    activity: ap.Activity,
) -> HandlerResult:
    try:
        handler = _get_handler(activity.type)

        actor_host = urlparse(ap.get_actor_as_id(activity)).hostname
        if actor_host and is_hostname_blocked(actor_host):
            return Dropped(f"{actor_host} is blocked")

        return await handler(db_session, activity)
    except UnsupportedTypeError as exc:
        return Dropped(str(exc))
    except ActivityError as exc:
        return Failed(exc)
    except (ap.FetchError, InvalidURLError) as exc:
        return Dropped(f"remote fetch failed: {exc}")


async def handle_activity(
    db_session: AsyncSession,
    activity: ap.Activity | ap.RawObject,
) -> HandlerResult:
    """Apply the side effects of an incoming activity.

    The changes are committed unless the activity failed, in which case
    nothing is persisted and the caller is expected to report the failure to
    the sender.
    """
    try:
        if not isinstance(activity, ap.Activity):
            activity = ap.Activity.from_raw(activity)
    except ActivityError as exc:
        logger.error(f"Invalid activity: {exc}")
        return Failed(exc)

    with logger.contextualize(
        activity_type=activity.type, activity_id=activity.id or "no_id"
    ):
        logger.info(f"Processing {activity.type} activity")
        try:
            result = await _dispatch(db_session, activity)
        except Exception:
            logger.exception(f"Failed to process {activity.type} activity")
            await db_session.rollback()
            raise

        if isinstance(result, Failed):
            logger.error(f"Failed to process activity: {result.error!r}")
            await db_session.rollback()
        else:
            if isinstance(result, Dropped):
                logger.warning(f"Dropping activity: {result.reason}")
            await db_session.commit()

    return result
