import enum
from typing import Any

from sqlalchemy import JSON
from sqlalchemy import Boolean
from sqlalchemy import Column
from sqlalchemy import DateTime
from sqlalchemy import Enum
from sqlalchemy import ForeignKey
from sqlalchemy import Integer
from sqlalchemy import String
from sqlalchemy import UniqueConstraint
from sqlalchemy.orm import Mapped
from sqlalchemy.orm import relationship

from apinbox import activitypub as ap
from apinbox.actor import Actor as BaseActor
from apinbox.database import Base
from apinbox.utils.datetime import now


class Actor(Base, BaseActor):
    __tablename__ = "actor"

    id = Column(Integer, primary_key=True, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=now)

    ap_id: Mapped[str] = Column(String, unique=True, nullable=False, index=True)
    ap_actor: Mapped[ap.RawObject] = Column(JSON, nullable=False)
    ap_type = Column(String, nullable=False)

    handle = Column(String, nullable=True, index=True)

    # Denormalized from `ap_actor` to resolve followers collections
    followers_url = Column(String, nullable=True, index=True)

    is_local = Column(Boolean, nullable=False, default=False)
    # Only set for local actors
    private_key_pem = Column(String, nullable=True)


class Object(Base):
    __tablename__ = "object"

    id = Column(Integer, primary_key=True, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=now)

    # Local ID, allocated by this server
    ap_id: Mapped[str] = Column(String, nullable=False, unique=True, index=True)
    # ID under which the object was first published
    original_ap_id: Mapped[str] = Column(
        String, nullable=False, unique=True, index=True
    )
    original_actor_ap_id = Column(String, nullable=True, index=True)

    ap_type = Column(String, nullable=False, index=True)
    ap_object: Mapped[ap.RawObject] = Column(JSON, nullable=False)

    is_local = Column(Boolean, nullable=False, default=False)

    @property
    def in_reply_to(self) -> str | None:
        in_reply_to = self.ap_object.get("inReplyTo")
        if in_reply_to:
            return ap.get_id(in_reply_to)
        return None


class FollowStateEnum(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"


class ActorFollowing(Base):
    __tablename__ = "actor_following"
    __table_args__ = (UniqueConstraint("actor_id", "target_actor_id"),)

    id = Column(Integer, primary_key=True, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=now)

    # The follower
    actor_id = Column(Integer, ForeignKey("actor.id"), nullable=False)
    actor: Mapped[Actor] = relationship(Actor, foreign_keys=[actor_id])

    # The followee
    target_actor_id = Column(Integer, ForeignKey("actor.id"), nullable=False)
    target_actor: Mapped[Actor] = relationship(Actor, foreign_keys=[target_actor_id])
    target_actor_acct = Column(String, nullable=False)

    state = Column(
        Enum(FollowStateEnum), nullable=False, default=FollowStateEnum.PENDING
    )


class ActorReply(Base):
    __tablename__ = "actor_reply"

    id = Column(Integer, primary_key=True, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=now)

    actor_id = Column(Integer, ForeignKey("actor.id"), nullable=False)
    object_id = Column(Integer, ForeignKey("object.id"), nullable=False, unique=True)
    in_reply_to_object_id = Column(
        Integer, ForeignKey("object.id"), nullable=False, index=True
    )


class ActorLike(Base):
    __tablename__ = "actor_like"
    __table_args__ = (UniqueConstraint("actor_id", "object_id"),)

    id = Column(Integer, primary_key=True, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=now)

    actor_id = Column(Integer, ForeignKey("actor.id"), nullable=False)
    object_id = Column(Integer, ForeignKey("object.id"), nullable=False, index=True)


class ActorReblog(Base):
    __tablename__ = "actor_reblog"
    __table_args__ = (UniqueConstraint("actor_id", "object_id"),)

    id = Column(Integer, primary_key=True, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=now)

    actor_id = Column(Integer, ForeignKey("actor.id"), nullable=False)
    object_id = Column(Integer, ForeignKey("object.id"), nullable=False, index=True)


class InboxEntry(Base):
    __tablename__ = "inbox_entry"
    __table_args__ = (UniqueConstraint("actor_id", "object_id"),)

    id = Column(Integer, primary_key=True, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=now)

    actor_id = Column(Integer, ForeignKey("actor.id"), nullable=False)
    object_id = Column(Integer, ForeignKey("object.id"), nullable=False)
    object: Mapped[Object] = relationship(Object, uselist=False)


class OutboxEntry(Base):
    __tablename__ = "outbox_entry"
    __table_args__ = (UniqueConstraint("actor_id", "object_id"),)

    id = Column(Integer, primary_key=True, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=now)

    actor_id = Column(Integer, ForeignKey("actor.id"), nullable=False)
    object_id = Column(Integer, ForeignKey("object.id"), nullable=False)
    object: Mapped[Object] = relationship(Object, uselist=False)

    target = Column(String, nullable=False, default=ap.AS_PUBLIC)
    published_at = Column(DateTime(timezone=True), nullable=False, default=now)


class NotificationType(str, enum.Enum):
    MENTION = "mention"
    FAVOURITE = "favourite"
    REBLOG = "reblog"
    FOLLOW = "follow"


class Notification(Base):
    __tablename__ = "notification"

    id = Column(Integer, primary_key=True, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=now)
    notification_type = Column(Enum(NotificationType), nullable=False)
    is_new = Column(Boolean, nullable=False, default=True)

    # The local actor being notified
    to_actor_id = Column(Integer, ForeignKey("actor.id"), nullable=False, index=True)
    from_actor_id = Column(Integer, ForeignKey("actor.id"), nullable=False)
    from_actor: Mapped[Actor] = relationship(Actor, foreign_keys=[from_actor_id])

    object_id = Column(Integer, ForeignKey("object.id"), nullable=True)

    sent_at = Column(DateTime(timezone=True), nullable=True)


class PushSubscription(Base):
    __tablename__ = "push_subscription"

    id = Column(Integer, primary_key=True, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=now)

    actor_id = Column(Integer, ForeignKey("actor.id"), nullable=False, index=True)
    endpoint = Column(String, nullable=False)
    key_p256dh = Column(String, nullable=False)
    key_auth = Column(String, nullable=False)


class NotificationDelivery(Base):
    """A push message waiting to be sent by the Web Push transport."""

    __tablename__ = "notification_delivery"

    id = Column(Integer, primary_key=True, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=now)

    notification_id = Column(Integer, ForeignKey("notification.id"), nullable=False)
    push_subscription_id = Column(
        Integer, ForeignKey("push_subscription.id"), nullable=False
    )

    endpoint = Column(String, nullable=False)
    payload: Mapped[dict[str, Any]] = Column(JSON, nullable=False)
    vapid_subject = Column(String, nullable=False)
    vapid_public_key = Column(String, nullable=False)

    is_sent = Column(Boolean, nullable=False, default=False)


class OutgoingActivity(Base):
    __tablename__ = "outgoing_activity"

    id = Column(Integer, primary_key=True, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=now)

    recipient = Column(String, nullable=False)

    from_actor_id = Column(Integer, ForeignKey("actor.id"), nullable=False)
    to_actor_id = Column(Integer, ForeignKey("actor.id"), nullable=False)
    signing_key_id = Column(String, nullable=False)
    ap_object: Mapped[ap.RawObject] = Column(JSON, nullable=False)

    tries = Column(Integer, nullable=False, default=0)
    next_try = Column(DateTime(timezone=True), nullable=True, default=now)

    is_sent = Column(Boolean, nullable=False, default=False)
    is_errored = Column(Boolean, nullable=False, default=False)
    error = Column(String, nullable=True)
