"""Expand the `to`/`cc` addressing of an activity into local actors."""
from dataclasses import dataclass
from dataclasses import field
from urllib.parse import urlparse

from loguru import logger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from apinbox import activitypub as ap
from apinbox import models
from apinbox.actor import actor_url
from apinbox.actor import get_actor_by_id
from apinbox.actor import local_username_from_url
from apinbox.config import DOMAIN


@dataclass
class Recipients:
    # Local actors directly addressed
    direct: list[models.Actor] = field(default_factory=list)
    # Local actors reached through a collection of this server
    from_collections: list[models.Actor] = field(default_factory=list)

    @property
    def ap_ids(self) -> set[str]:
        return {actor.ap_id for actor in self.direct + self.from_collections}


def _is_local_url(url: str) -> bool:
    return urlparse(url).hostname == DOMAIN


async def find_actor_from_recipient(
    db_session: AsyncSession,
    recipient: str,
) -> models.Actor | None:
    if not _is_local_url(recipient):
        # Actor isn't in our instance
        return None

    try:
        username = local_username_from_url(recipient)
    except ValueError:
        logger.debug(f"{recipient} is not a local actor URL")
        return None

    actor = await get_actor_by_id(db_session, actor_url(username))
    if actor is None or not actor.is_local:
        logger.warning(f"local actor {recipient} not found")
        return None

    return actor


async def find_actors_from_collection(
    db_session: AsyncSession,
    collection: str,
) -> list[models.Actor]:
    if not _is_local_url(collection):
        logger.warning(f"Unsupported remote collection {collection}")
        return []

    # Assume it's a followers collection
    owner_ids = select(models.Actor.id).where(
        models.Actor.followers_url == collection
    )
    follower_ids = select(models.ActorFollowing.actor_id).where(
        models.ActorFollowing.target_actor_id.in_(owner_ids)
    )
    return list(
        (
            await db_session.scalars(
                select(models.Actor)
                .where(
                    models.Actor.id.in_(follower_ids),
                    models.Actor.is_local.is_(True),
                )
                .order_by(models.Actor.id)
            )
        ).all()
    )


async def resolve_recipients(
    db_session: AsyncSession,
    to: list[str],
    cc: list[str],
) -> Recipients:
    """Never raises for a single bad recipient, it is logged and skipped."""
    if len(to) > 1:
        logger.warning("multiple `Activity.to` isn't supported")

    recipients = Recipients()
    seen: set[str] = set()
    for recipient in to + cc:
        if recipient in seen or recipient == ap.AS_PUBLIC:
            continue
        seen.add(recipient)

        try:
            actor = await find_actor_from_recipient(db_session, recipient)
            if actor is not None:
                if actor.ap_id not in recipients.ap_ids:
                    recipients.direct.append(actor)
                continue

            members = await find_actors_from_collection(db_session, recipient)
        except Exception:
            logger.exception(f"Failed to resolve recipient {recipient}")
            continue

        if not members:
            logger.info(f"No local actors found for {recipient}")

        for member in members:
            if member.ap_id not in recipients.ap_ids:
                recipients.from_collections.append(member)

    return recipients
