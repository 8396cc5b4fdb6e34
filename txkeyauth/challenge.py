
import base64
import hashlib

import attr
import nacl.utils

from txkeyauth.errors import InsufficientEntropy
from txkeyauth.util import is_128bytes


CHALLENGE_LENGTH = 128


@attr.s(frozen=True, repr=False)
class Challenge(object):
    """
    single use random bytes the client has to sign. the client signs
    SHA-256(raw), see digest.
    """
    raw = attr.ib(validator=is_128bytes)

    @property
    def digest(self):
        return hashlib.sha256(self.raw).digest()

    @property
    def encoded(self):
        return base64.b64encode(self.raw).decode("ascii")

    def __repr__(self):
        return "<Challenge {}...>".format(self.encoded[:8])


def generate_challenge(random_source=nacl.utils.random):
    """
    draw CHALLENGE_LENGTH bytes from libsodium's CSPRNG, which is
    shared by the whole process and safe to call from any thread.
    """
    raw = random_source(CHALLENGE_LENGTH)
    if len(raw) < CHALLENGE_LENGTH:
        raise InsufficientEntropy(
            "failed to read random numbers: wanted {} bytes, got {}".format(CHALLENGE_LENGTH, len(raw)))
    return Challenge(raw)
