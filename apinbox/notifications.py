from typing import Any

from loguru import logger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from apinbox import config
from apinbox import models
from apinbox.utils.datetime import now

_MESSAGES = {
    models.NotificationType.MENTION: ("New mention", "You were mentioned by {name}"),
    models.NotificationType.FAVOURITE: (
        "New favourite",
        "{name} favourited your status",
    ),
    models.NotificationType.REBLOG: ("New boost", "{name} boosted your status"),
    models.NotificationType.FOLLOW: ("New follower", "{name} is now following you"),
}


def is_notification_enabled(notification_type: models.NotificationType) -> bool:
    """Checks if a given notification type is enabled."""
    return notification_type.value not in config.DISABLED_NOTIFICATIONS


async def create_notification(
    db_session: AsyncSession,
    notification_type: models.NotificationType,
    to_actor: models.Actor,
    from_actor: models.Actor,
    obj: models.Object | None = None,
) -> models.Notification:
    notif = models.Notification(
        notification_type=notification_type,
        to_actor_id=to_actor.id,
        from_actor_id=from_actor.id,
        object_id=obj.id if obj else None,
    )
    db_session.add(notif)
    await db_session.flush()
    return notif


def build_push_message(
    notification: models.Notification,
    from_actor: models.Actor,
) -> dict[str, Any]:
    title, body = _MESSAGES[notification.notification_type]
    return {
        "notification_type": notification.notification_type.value,
        "notification_id": str(notification.id),
        "preferred_locale": "en",
        "title": title,
        "body": body.format(name=from_actor.display_name),
        "icon": from_actor.icon_url,
        "access_token": "",
    }


async def get_push_subscriptions(
    db_session: AsyncSession,
    actor: models.Actor,
) -> list[models.PushSubscription]:
    return list(
        (
            await db_session.scalars(
                select(models.PushSubscription).where(
                    models.PushSubscription.actor_id == actor.id
                )
            )
        ).all()
    )


async def send_notification(
    db_session: AsyncSession,
    notification: models.Notification,
    from_actor: models.Actor,
    to_actor: models.Actor,
    admin_email: str | None = None,
    vapid_keys: config._VapidKeys | None = None,
) -> list[models.NotificationDelivery]:
    """Queue the push message of the notification for every subscription of
    the notified actor.

    The Web Push transport picks up the `NotificationDelivery` rows.
    """
    admin_email = admin_email or config.ADMIN_EMAIL
    vapid_keys = vapid_keys or config.VAPID_KEYS

    message = build_push_message(notification, from_actor)
    deliveries = []
    for subscription in await get_push_subscriptions(db_session, to_actor):
        delivery = models.NotificationDelivery(
            notification_id=notification.id,
            push_subscription_id=subscription.id,
            endpoint=subscription.endpoint,
            payload=message,
            vapid_subject=f"mailto:{admin_email}",
            vapid_public_key=vapid_keys.public_key,
        )
        db_session.add(delivery)
        deliveries.append(delivery)

    notification.sent_at = now()
    await db_session.flush()
    logger.info(
        f"Sent {notification.notification_type.value} notification "
        f"{notification.id} to {to_actor.ap_id} ({len(deliveries)} subscriptions)"
    )
    return deliveries
