import hashlib
import typing
from urllib.parse import urlparse

from loguru import logger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from apinbox import activitypub as ap
from apinbox.config import BASE_URL
from apinbox.utils.datetime import now

if typing.TYPE_CHECKING:
    from apinbox.models import Actor as ActorModel

_LOCAL_ACTOR_PREFIX = f"{BASE_URL}/ap/users/"


def actor_url(username: str) -> str:
    return _LOCAL_ACTOR_PREFIX + username


def parse_handle(handle: str) -> tuple[str, str | None]:
    """Parse `@user@domain`, `user@domain` or `user` into its parts."""
    local_part, _, domain = handle.removeprefix("@").partition("@")
    if not local_part or "/" in local_part or "@" in domain:
        raise ValueError(f"Invalid handle {handle}")

    return local_part, domain or None


def local_username_from_url(url: str) -> str:
    if not url.startswith(_LOCAL_ACTOR_PREFIX):
        raise ValueError(f"{url} is not a local actor URL")

    local_part, _ = parse_handle(url.removeprefix(_LOCAL_ACTOR_PREFIX))
    return local_part


def _handle(raw_actor: ap.RawObject) -> str:
    ap_id = ap.get_id(raw_actor["id"])
    domain = urlparse(ap_id)
    if not domain.hostname:
        raise ValueError(f"Invalid actor ID {ap_id}")

    return f'@{raw_actor["preferredUsername"]}@{domain.hostname}'  # type: ignore


class Actor:
    @property
    def ap_actor(self) -> ap.RawObject:
        raise NotImplementedError()

    @property
    def ap_id(self) -> str:
        return ap.get_id(self.ap_actor["id"])

    @property
    def name(self) -> str | None:
        return self.ap_actor.get("name")

    @property
    def preferred_username(self) -> str:
        return self.ap_actor["preferredUsername"]

    @property
    def display_name(self) -> str:
        if self.name:
            return self.name
        return self.preferred_username

    @property
    def handle(self) -> str:
        return _handle(self.ap_actor)

    @property
    def ap_type(self) -> str:
        raise NotImplementedError()

    @property
    def inbox_url(self) -> str:
        return self.ap_actor["inbox"]

    @property
    def icon_url(self) -> str | None:
        if icon := self.ap_actor.get("icon"):
            return icon.get("url")
        return None

    @property
    def public_key_as_pem(self) -> str:
        return self.ap_actor["publicKey"]["publicKeyPem"]

    @property
    def public_key_id(self) -> str:
        return self.ap_actor["publicKey"]["id"]

    @property
    def followers_collection_id(self) -> str | None:
        return self.ap_actor.get("followers")


class RemoteActor(Actor):
    def __init__(self, ap_actor: ap.RawObject) -> None:
        if (ap_type := ap_actor.get("type")) not in ap.ACTOR_TYPES:
            raise ValueError(f"Unexpected actor type: {ap_type}")

        self._ap_actor = ap_actor
        self._ap_type = ap_type

    @property
    def ap_actor(self) -> ap.RawObject:
        return self._ap_actor

    @property
    def ap_type(self) -> str:
        return self._ap_type


async def save_actor(
    db_session: AsyncSession,
    ap_actor: ap.RawObject,
    private_key_pem: str | None = None,
) -> "ActorModel":
    from apinbox import models

    if (ap_type := ap.as_list(ap_actor.get("type"))[0]) not in ap.ACTOR_TYPES:
        raise ValueError(f"Invalid type {ap_type} for actor {ap.get_id(ap_actor)}")

    actor = models.Actor(
        ap_id=ap.get_id(ap_actor["id"]),
        ap_actor=ap_actor,
        ap_type=ap_type,
        handle=_handle(ap_actor),
        followers_url=ap_actor.get("followers"),
        is_local=private_key_pem is not None,
        private_key_pem=private_key_pem,
    )
    db_session.add(actor)
    await db_session.flush()
    await db_session.refresh(actor)
    return actor


async def get_actor_by_id(
    db_session: AsyncSession,
    actor_id: str,
) -> typing.Optional["ActorModel"]:
    from apinbox import models

    return (
        await db_session.scalars(
            select(models.Actor).where(
                models.Actor.ap_id == actor_id,
            )
        )
    ).one_or_none()


async def get_or_fetch_actor(
    db_session: AsyncSession,
    actor_id: str,
) -> "ActorModel":
    """Returns the cached actor, fetching and caching remote actors on first
    reference.

    Cached actors are only refreshed by explicit `Update` activities.
    """
    existing_actor = await get_actor_by_id(db_session, actor_id)
    if existing_actor:
        return existing_actor

    ap_actor = await ap.fetch(actor_id)
    try:
        remote_actor = RemoteActor(ap_actor)
        fetched_actor_id = remote_actor.ap_id
    except (KeyError, ValueError):
        raise ap.NotAnObjectError(actor_id)

    # Some softwares uses URL when we expect ID or uses a different casing
    # (like Birdsite LIVE) , which mean we may already have it in DB
    if fetched_actor_id != actor_id:
        existing_actor_by_url = await get_actor_by_id(db_session, fetched_actor_id)
        if existing_actor_by_url:
            # Update the actor as we had to fetch it anyway
            await update_actor_if_needed(
                db_session,
                existing_actor_by_url,
                remote_actor,
            )
            return existing_actor_by_url

    logger.info(f"Caching actor {fetched_actor_id}")
    try:
        return await save_actor(db_session, ap_actor)
    except KeyError:
        raise ap.NotAnObjectError(actor_id)


async def update_actor_if_needed(
    db_session: AsyncSession,
    actor_in_db: "ActorModel",
    ra: RemoteActor,
) -> None:
    # Check if we actually need to udpte the actor in DB
    if _actor_hash(ra) != _actor_hash(actor_in_db):
        logger.info(f"Updating actor {actor_in_db.ap_id}")
        actor_in_db.ap_actor = ra.ap_actor
        actor_in_db.handle = ra.handle
        actor_in_db.ap_type = ra.ap_type
        actor_in_db.followers_url = ra.followers_collection_id

    actor_in_db.updated_at = now()
    await db_session.flush()


def _actor_hash(actor: Actor) -> bytes:
    """Used to detect when an actor is updated"""
    h = hashlib.blake2b(digest_size=32)
    h.update(actor.ap_id.encode())
    h.update(actor.handle.encode())

    if actor.name:
        h.update(actor.name.encode())

    h.update(actor.display_name.encode())

    if actor.icon_url:
        h.update(actor.icon_url.encode())

    if actor.followers_collection_id:
        h.update(actor.followers_collection_id.encode())

    h.update(actor.inbox_url.encode())
    h.update(actor.public_key_id.encode())
    h.update(actor.public_key_as_pem.encode())

    return h.digest()
