from typing import Any

import httpx
import respx
from sqlalchemy import func
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from apinbox import actor
from apinbox import models
from tests import factories


def setup_remote_actor(
    respx_mock: respx.MockRouter | None = None,
    base_url: str = "https://example.com/users/toto",
    username: str = "toto",
) -> actor.RemoteActor:
    """Build a remote actor, reachable through a mocked HTTP endpoint if a
    router is given."""
    ra = factories.RemoteActorFactory(base_url=base_url, username=username)
    if respx_mock is not None:
        respx_mock.get(ra.ap_id).mock(
            return_value=httpx.Response(200, json=ra.ap_actor)
        )
    return ra


def setup_cached_remote_actor(
    base_url: str = "https://example.com/users/toto",
    username: str = "toto",
) -> models.Actor:
    ra = factories.RemoteActorFactory(base_url=base_url, username=username)
    return factories.ActorFactory.from_remote_actor(ra)


def setup_local_actor(username: str = "alice") -> models.Actor:
    return factories.ActorFactory.local(username)


async def count_rows(db_session: AsyncSession, model: Any, *where: Any) -> int:
    return await db_session.scalar(
        select(func.count(model.id)).where(*where)  # type: ignore
    )
