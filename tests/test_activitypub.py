import httpx
import pytest
import respx

from apinbox import activitypub as ap
from apinbox import config
from apinbox.errors import InvalidIdentifierError
from apinbox.errors import MalformedActivityError

_NOTE_ID = "https://example.com/users/toto/note/1"
_ACTOR_ID = "https://example.com/users/toto"


@pytest.mark.parametrize(
    "ref",
    [
        _NOTE_ID,
        {"id": _NOTE_ID, "type": "Note"},
        httpx.URL(_NOTE_ID),
    ],
)
def test_get_object_as_id__supports_all_encodings(ref) -> None:
    activity = ap.Activity(type="Like", actor=_ACTOR_ID, object=ref)

    assert ap.get_object_as_id(activity) == _NOTE_ID


@pytest.mark.parametrize(
    "ref",
    [
        _ACTOR_ID,
        {"id": _ACTOR_ID, "type": "Person"},
        httpx.URL(_ACTOR_ID),
    ],
)
def test_get_actor_as_id__supports_all_encodings(ref) -> None:
    activity = ap.Activity(type="Like", actor=ref, object=_NOTE_ID)

    assert ap.get_actor_as_id(activity) == _ACTOR_ID


@pytest.mark.parametrize("ref", [None, 1, ["https://example.com"], {"type": "Note"}])
def test_get_object_as_id__unknown_shape(ref) -> None:
    activity = ap.Activity(type="Like", actor=_ACTOR_ID, object=ref)

    with pytest.raises(MalformedActivityError):
        ap.get_object_as_id(activity)


@pytest.mark.parametrize("value", ["not a url", "/users/toto", "example.com/toto"])
def test_get_actor_as_id__invalid_identifier(value) -> None:
    activity = ap.Activity(type="Like", actor=value, object=_NOTE_ID)

    with pytest.raises(InvalidIdentifierError) as exc_info:
        ap.get_actor_as_id(activity)

    assert exc_info.value.value == value


def test_activity_from_raw() -> None:
    activity = ap.Activity.from_raw(
        {
            "@context": ap.AS_CTX,
            "id": _NOTE_ID + "/activity",
            "type": "Create",
            "actor": _ACTOR_ID,
            "object": {"id": _NOTE_ID, "type": "Note"},
            "to": ap.AS_PUBLIC,
            "cc": [{"id": _ACTOR_ID + "/followers"}],
            "published": "2022-06-22T12:00:00Z",
        }
    )

    assert activity.type == "Create"
    assert activity.to == [ap.AS_PUBLIC]
    assert activity.cc == [_ACTOR_ID + "/followers"]
    assert activity.has_complex_object
    assert activity.require_complex_object()["id"] == _NOTE_ID


@pytest.mark.parametrize(
    "raw_activity",
    [
        "Create",
        {"actor": _ACTOR_ID, "object": _NOTE_ID},
        {"type": "Like", "object": _NOTE_ID},
        {"type": "Like", "actor": _ACTOR_ID, "to": [{"type": "Collection"}]},
    ],
)
def test_activity_from_raw__malformed(raw_activity) -> None:
    with pytest.raises(MalformedActivityError):
        ap.Activity.from_raw(raw_activity)


def test_require_complex_object__with_a_string() -> None:
    activity = ap.Activity(type="Update", actor=_ACTOR_ID, object=_NOTE_ID)

    assert not activity.has_complex_object
    with pytest.raises(MalformedActivityError):
        activity.require_complex_object()


def test_activity_to_raw__serializes_resolved_references() -> None:
    activity = ap.Activity(
        type="Follow",
        actor=httpx.URL(_ACTOR_ID),
        object="https://cheese.example/ap/users/alice",
        id=_ACTOR_ID + "/follow/1",
    )

    assert activity.to_raw() == {
        "@context": ap.AS_CTX,
        "type": "Follow",
        "id": _ACTOR_ID + "/follow/1",
        "actor": _ACTOR_ID,
        "object": "https://cheese.example/ap/users/alice",
    }


@pytest.mark.asyncio
async def test_fetch(respx_mock: respx.MockRouter) -> None:
    respx_mock.get(_NOTE_ID).mock(
        return_value=httpx.Response(200, json={"id": _NOTE_ID, "type": "Note"})
    )

    assert await ap.fetch(_NOTE_ID) == {"id": _NOTE_ID, "type": "Note"}
    assert respx_mock.calls.last.request.headers["Accept"] == config.AP_CONTENT_TYPE


@pytest.mark.parametrize(
    "status_code,exc_class",
    [
        (410, ap.ObjectIsGoneError),
        (404, ap.ObjectNotFoundError),
        (403, ap.ObjectUnavailableError),
        (500, ap.FetchError),
    ],
)
@pytest.mark.asyncio
async def test_fetch__errors(
    respx_mock: respx.MockRouter,
    status_code: int,
    exc_class: type[ap.FetchError],
) -> None:
    respx_mock.get(_NOTE_ID).mock(return_value=httpx.Response(status_code))

    with pytest.raises(exc_class):
        await ap.fetch(_NOTE_ID)


@pytest.mark.asyncio
async def test_fetch__not_an_object(respx_mock: respx.MockRouter) -> None:
    respx_mock.get(_NOTE_ID).mock(return_value=httpx.Response(200, json=[1, 2]))

    with pytest.raises(ap.NotAnObjectError):
        await ap.fetch(_NOTE_ID)


@pytest.mark.asyncio
async def test_fetch__transport_error(respx_mock: respx.MockRouter) -> None:
    respx_mock.get(_NOTE_ID).mock(side_effect=httpx.ConnectError)

    with pytest.raises(ap.FetchError):
        await ap.fetch(_NOTE_ID)
