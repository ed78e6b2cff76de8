from Crypto.PublicKey import RSA

from apinbox import models


class Key(object):
    """RSA key used to sign the activities delivered on behalf of an actor."""

    def __init__(self, owner: str, id_: str | None = None) -> None:
        self.owner = owner
        self.id_ = id_
        self.privkey: RSA.RsaKey | None = None

    def load(self, privkey_pem: str) -> None:
        self.privkey = RSA.importKey(privkey_pem)

    def key_id(self) -> str:
        return self.id_ or f"{self.owner}#main-key"


def get_signing_key(actor: models.Actor) -> Key:
    if not actor.is_local or not actor.private_key_pem:
        raise ValueError(f"{actor.ap_id} is not a local actor")

    k = Key(actor.ap_id, actor.public_key_id)
    k.load(actor.private_key_pem)
    return k
