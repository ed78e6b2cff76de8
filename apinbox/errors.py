"""Errors raised while processing an incoming activity."""


class ActivityError(Exception):
    """Base error, fatal to the single activity being processed."""


class MalformedActivityError(ActivityError):
    """Raised when a required field is missing or has the wrong shape."""


class InvalidIdentifierError(ActivityError):
    """Raised when an `actor`/`object` reference is not an absolute URI."""

    def __init__(self, value: str) -> None:
        super().__init__(f"invalid URL: {value}")
        self.value = value


class UnknownEntityError(ActivityError):
    """Raised when a referenced actor/object cannot be resolved."""


class AuthorizationMismatchError(ActivityError):
    """Raised when the actor does not own the object it tries to mutate."""

    def __init__(self, actor_id: str, owner_id: str | None) -> None:
        super().__init__(f"actor {actor_id} does not match owner {owner_id}")
        self.actor_id = actor_id
        self.owner_id = owner_id


class UnsupportedTypeError(ActivityError):
    """Raised when an activity or object type is not handled."""
