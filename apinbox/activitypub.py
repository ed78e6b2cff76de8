import enum
import json
from dataclasses import dataclass
from dataclasses import field
from typing import Any
from typing import Union
from urllib.parse import urlparse

import httpx
from loguru import logger

from apinbox import config
from apinbox.errors import InvalidIdentifierError
from apinbox.errors import MalformedActivityError
from apinbox.utils.url import check_url

RawObject = dict[str, Any]
AS_CTX = "https://www.w3.org/ns/activitystreams"
AS_PUBLIC = "https://www.w3.org/ns/activitystreams#Public"

ACTOR_TYPES = ["Application", "Group", "Organization", "Person", "Service"]

# An `actor`/`object` field may be sent in its compact form (the ID as a
# string), in its expanded form (an embedded object), or as an already
# resolved `httpx.URL` (only used by tests).
IdentifierRef = Union[str, RawObject, httpx.URL]


class FetchError(Exception):
    def __init__(self, url: str, resp: httpx.Response | None = None) -> None:
        resp_part = ""
        if resp:
            resp_part = f", got HTTP {resp.status_code}"
        message = f"Failed to fetch {url}{resp_part}"
        super().__init__(message)
        self.resp = resp
        self.url = url


class ObjectIsGoneError(FetchError):
    pass


class ObjectNotFoundError(FetchError):
    pass


class ObjectUnavailableError(FetchError):
    pass


class NotAnObjectError(FetchError):
    pass


class ActivityTypeEnum(str, enum.Enum):
    UPDATE = "Update"
    CREATE = "Create"
    ACCEPT = "Accept"
    FOLLOW = "Follow"
    ANNOUNCE = "Announce"
    LIKE = "Like"
    DELETE = "Delete"


async def fetch(
    url: str,
    params: dict[str, Any] | None = None,
) -> RawObject:
    logger.info(f"Fetching {url} ({params=})")
    check_url(url)

    async with httpx.AsyncClient() as client:
        try:
            resp = await client.get(
                url,
                headers={
                    "User-Agent": config.USER_AGENT,
                    "Accept": config.AP_CONTENT_TYPE,
                },
                params=params,
                follow_redirects=True,
            )
        except httpx.TransportError as transport_error:
            raise FetchError(url) from transport_error

    # Special handling for deleted object
    if resp.status_code == 410:
        raise ObjectIsGoneError(url, resp)
    elif resp.status_code in [401, 403]:
        raise ObjectUnavailableError(url, resp)
    elif resp.status_code == 404:
        raise ObjectNotFoundError(url, resp)

    try:
        resp.raise_for_status()
    except httpx.HTTPError as http_error:
        raise FetchError(url, resp) from http_error

    try:
        payload = resp.json()
    except json.JSONDecodeError:
        raise NotAnObjectError(url, resp)

    if not isinstance(payload, dict):
        raise NotAnObjectError(url, resp)

    return payload


def as_list(val: Any | list[Any]) -> list[Any]:
    if isinstance(val, list):
        return val

    return [val]


def get_id(val: str | dict[str, Any]) -> str:
    if isinstance(val, dict):
        val = val["id"]

    if not isinstance(val, str):
        raise ValueError(f"Invalid ID type: {val}")

    return val


def get_actor_id(activity: RawObject) -> str:
    if "attributedTo" in activity:
        attributed_to = as_list(activity["attributedTo"])
        return get_id(attributed_to[0])
    else:
        return get_id(activity["actor"])


def remove_context(raw_object: RawObject) -> RawObject:
    if "@context" not in raw_object:
        return raw_object
    a = dict(raw_object)
    del a["@context"]
    return a


@dataclass
class Activity:
    """An incoming activity, already parsed from its JSON payload."""

    type: str
    actor: IdentifierRef
    object: IdentifierRef | None = None
    to: list[str] = field(default_factory=list)
    cc: list[str] = field(default_factory=list)
    published: str | None = None
    id: str | None = None

    @classmethod
    def from_raw(cls, raw_activity: RawObject) -> "Activity":
        if not isinstance(raw_activity, dict):
            raise MalformedActivityError("activity must be an object")
        if not raw_activity.get("type"):
            raise MalformedActivityError("activity is missing a type")
        if "actor" not in raw_activity:
            raise MalformedActivityError("activity is missing an actor")

        try:
            to = [get_id(to) for to in as_list(raw_activity.get("to", []))]
            cc = [get_id(cc) for cc in as_list(raw_activity.get("cc", []))]
        except (KeyError, ValueError) as exc:
            raise MalformedActivityError(f"invalid addressing: {exc}") from exc

        return cls(
            type=as_list(raw_activity["type"])[0],
            actor=raw_activity["actor"],
            object=raw_activity.get("object"),
            to=to,
            cc=cc,
            published=raw_activity.get("published"),
            id=raw_activity.get("id"),
        )

    @property
    def has_complex_object(self) -> bool:
        return isinstance(self.object, dict)

    def require_complex_object(self) -> RawObject:
        """The `object` field of some activities is required to be an object."""
        if not isinstance(self.object, dict):
            raise MalformedActivityError(
                f"{self.type}: `activity.object` must be of type object"
            )
        return self.object

    def to_raw(self) -> RawObject:
        raw_activity: RawObject = {
            "@context": AS_CTX,
            "type": self.type,
            "actor": _as_raw_ref(self.actor),
            "object": _as_raw_ref(self.object),
        }
        if self.id:
            raw_activity["id"] = self.id
        if self.to:
            raw_activity["to"] = self.to
        if self.cc:
            raw_activity["cc"] = self.cc
        if self.published:
            raw_activity["published"] = self.published
        return raw_activity


def _as_raw_ref(ref: IdentifierRef | None) -> Any:
    if isinstance(ref, httpx.URL):
        return str(ref)
    return ref


def _resolve_identifier(field_name: str, value: IdentifierRef | None) -> str:
    url: Any = None
    if isinstance(value, dict) and value.get("id"):
        url = value["id"]
    elif isinstance(value, str):
        url = value
    elif isinstance(value, httpx.URL):
        # Already resolved, only used by tests
        return str(value)

    if not isinstance(url, str):
        raise MalformedActivityError(
            f"unknown value for `{field_name}`: {type(value).__name__}"
        )

    parsed = urlparse(url)
    if not parsed.scheme or not parsed.netloc:
        logger.warning(f"invalid URL: {url}")
        raise InvalidIdentifierError(url)

    return url


def get_object_as_id(activity: Activity) -> str:
    return _resolve_identifier("object", activity.object)


def get_actor_as_id(activity: Activity) -> str:
    return _resolve_identifier("actor", activity.actor)
