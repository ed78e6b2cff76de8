from uuid import uuid4

import factory  # type: ignore
from Crypto.PublicKey import RSA
from sqlalchemy import orm

from apinbox import activitypub as ap
from apinbox import actor
from apinbox import models
from apinbox.actor import RemoteActor
from apinbox.config import DOMAIN
from apinbox.database import SessionLocal
from apinbox.objects import allocate_object_id
from apinbox.utils.datetime import now

_Session = orm.scoped_session(SessionLocal)


def generate_key() -> tuple[str, str]:
    k = RSA.generate(1024)
    return k.exportKey("PEM").decode(), k.publickey().exportKey("PEM").decode()


# Generating a key is slow, share one between all the local actors
_PRIVATE_KEY, _PUBLIC_KEY = generate_key()

AnyActor = actor.RemoteActor | models.Actor


def build_ap_actor(
    base_url: str,
    username: str,
    public_key: str,
    name: str | None = None,
) -> ap.RawObject:
    return {
        "@context": ap.AS_CTX,
        "type": "Person",
        "id": base_url,
        "following": base_url + "/following",
        "followers": base_url + "/followers",
        "inbox": base_url + "/inbox",
        "outbox": base_url + "/outbox",
        "preferredUsername": username,
        "name": name or username,
        "summary": "I like unit tests",
        "url": base_url,
        "icon": {},
        "publicKey": {
            "id": f"{base_url}#main-key",
            "owner": base_url,
            "publicKeyPem": public_key,
        },
    }


def build_follow_activity(
    from_actor: AnyActor,
    for_actor: AnyActor,
) -> ap.RawObject:
    return {
        "@context": ap.AS_CTX,
        "type": "Follow",
        "id": from_actor.ap_id + "/follow/" + uuid4().hex,
        "actor": from_actor.ap_id,
        "object": for_actor.ap_id,
    }


def build_accept_activity(
    from_actor: AnyActor,
    follow_activity: ap.RawObject,
) -> ap.RawObject:
    return {
        "@context": ap.AS_CTX,
        "type": "Accept",
        "id": from_actor.ap_id + "/accept/" + uuid4().hex,
        "actor": from_actor.ap_id,
        "object": ap.remove_context(follow_activity),
    }


def build_note_object(
    from_actor: AnyActor,
    content: str = "Hello",
    to: list[str] | None = None,
    cc: list[str] | None = None,
    in_reply_to: str | None = None,
    note_type: str = "Note",
) -> ap.RawObject:
    published = now().replace(microsecond=0).isoformat().replace("+00:00", "Z")
    note_id = from_actor.ap_id + "/note/" + uuid4().hex
    return {
        "@context": ap.AS_CTX,
        "type": note_type,
        "id": note_id,
        "attributedTo": from_actor.ap_id,
        "content": content,
        "to": to or [ap.AS_PUBLIC],
        "cc": cc or [],
        "published": published,
        "url": note_id,
        "inReplyTo": in_reply_to,
        "sensitive": False,
    }


def build_create_activity(obj: ap.RawObject) -> ap.RawObject:
    return {
        "@context": ap.AS_CTX,
        "actor": obj["attributedTo"],
        "to": obj.get("to", []),
        "cc": obj.get("cc", []),
        "id": obj["id"] + "/activity",
        "object": ap.remove_context(obj),
        "published": obj["published"],
        "type": "Create",
    }


def build_update_activity(
    from_actor: AnyActor,
    obj: ap.RawObject,
) -> ap.RawObject:
    return {
        "@context": ap.AS_CTX,
        "type": "Update",
        "id": from_actor.ap_id + "/update/" + uuid4().hex,
        "actor": from_actor.ap_id,
        "object": ap.remove_context(obj),
    }


def build_announce_activity(
    from_actor: AnyActor,
    object_id: str,
) -> ap.RawObject:
    return {
        "@context": ap.AS_CTX,
        "type": "Announce",
        "id": from_actor.ap_id + "/announce/" + uuid4().hex,
        "actor": from_actor.ap_id,
        "object": object_id,
        "to": [ap.AS_PUBLIC],
    }


def build_like_activity(
    from_actor: AnyActor,
    object_id: str,
) -> ap.RawObject:
    return {
        "@context": ap.AS_CTX,
        "type": "Like",
        "id": from_actor.ap_id + "/like/" + uuid4().hex,
        "actor": from_actor.ap_id,
        "object": object_id,
    }


def build_delete_activity(
    from_actor: AnyActor,
    deleted_object_ap_id: str,
) -> ap.RawObject:
    return {
        "@context": ap.AS_CTX,
        "type": "Delete",
        "id": from_actor.ap_id + "/delete/" + uuid4().hex,
        "actor": from_actor.ap_id,
        "object": {"id": deleted_object_ap_id, "type": "Tombstone"},
    }


class BaseModelMeta:
    sqlalchemy_session = _Session
    sqlalchemy_session_persistence = "commit"


class RemoteActorFactory(factory.Factory):
    class Meta:
        model = RemoteActor

    class Params:
        base_url = "https://example.com/users/toto"
        username = "toto"
        public_key = "pk"

    ap_actor = factory.LazyAttribute(
        lambda o: build_ap_actor(o.base_url, o.username, o.public_key)
    )


class ActorFactory(factory.alchemy.SQLAlchemyModelFactory):
    class Meta(BaseModelMeta):
        model = models.Actor

    ap_type = "Person"

    @classmethod
    def from_remote_actor(cls, ra: RemoteActor) -> models.Actor:
        return cls(
            ap_type=ra.ap_type,
            ap_actor=ra.ap_actor,
            ap_id=ra.ap_id,
            handle=ra.handle,
            followers_url=ra.followers_collection_id,
        )

    @classmethod
    def local(cls, username: str) -> models.Actor:
        ap_actor = build_ap_actor(actor.actor_url(username), username, _PUBLIC_KEY)
        return cls(
            ap_actor=ap_actor,
            ap_id=ap_actor["id"],
            handle=f"@{username}@{DOMAIN}",
            followers_url=ap_actor["followers"],
            is_local=True,
            private_key_pem=_PRIVATE_KEY,
        )


class ObjectFactory(factory.alchemy.SQLAlchemyModelFactory):
    class Meta(BaseModelMeta):
        model = models.Object

    @classmethod
    def from_raw_object(
        cls,
        raw_object: ap.RawObject,
        is_local: bool = False,
    ) -> models.Object:
        return cls(
            ap_id=raw_object["id"] if is_local else allocate_object_id(),
            original_ap_id=raw_object["id"],
            original_actor_ap_id=ap.get_actor_id(raw_object),
            ap_type=raw_object["type"],
            ap_object=ap.remove_context(raw_object),
            is_local=is_local,
        )


class FollowingFactory(factory.alchemy.SQLAlchemyModelFactory):
    class Meta(BaseModelMeta):
        model = models.ActorFollowing

    state = models.FollowStateEnum.PENDING

    # actor_id
    # target_actor_id
    # target_actor_acct


class PushSubscriptionFactory(factory.alchemy.SQLAlchemyModelFactory):
    class Meta(BaseModelMeta):
        model = models.PushSubscription

    endpoint = factory.Sequence(lambda n: f"https://push.example/{n}")
    key_p256dh = "BNcRdreALRFXTkOOUHK1EtK2wtaz5Ry4YfYCA_0QTpQtUbVlUls0VJXg7A8u"
    key_auth = "tBHItJI5svbpez7KI4CCXg"
