
import base64

import attr
from Crypto.Util import number
from cryptography.hazmat.primitives.asymmetric import ec

from txkeyauth.errors import MalformedIdentity
from txkeyauth.util import is_65bytes


SCHEME = "WebCrypto-raw.EC"
P256 = "P-256"
P256_PREFIX = SCHEME + "." + P256
SEPARATOR = "$"

UNCOMPRESSED_POINT_MARKER = 4
COORDINATE_LENGTH = 32


def encode_client_id(curve_name, raw_public_key):
    """
    WebCrypto-raw.EC.<curve name>$<base64 of the raw public key>
    """
    encoded = base64.b64encode(raw_public_key).decode("ascii")
    return "{}.{}{}{}".format(SCHEME, curve_name, SEPARATOR, encoded)


def _is_uncompressed_p256_point(instance, attribute, value):
    is_65bytes(instance, attribute, value)
    if value[0] != UNCOMPRESSED_POINT_MARKER:
        raise ValueError("{} must start with 0x04".format(attribute.name))


@attr.s(frozen=True)
class ClientIdentity(object):
    """
    a claimed P-256 public key, as carried by a CLIENT_ID envelope.
    """
    raw_public_key = attr.ib(validator=_is_uncompressed_p256_point)
    curve_name = attr.ib(default=P256)
    scheme = attr.ib(default=SCHEME)

    @property
    def x(self):
        return number.bytes_to_long(self.raw_public_key[1:1 + COORDINATE_LENGTH])

    @property
    def y(self):
        return number.bytes_to_long(self.raw_public_key[1 + COORDINATE_LENGTH:])

    @property
    def client_id(self):
        return encode_client_id(self.curve_name, self.raw_public_key)

    def public_key(self):
        """
        raises ValueError if the point is not on the curve
        """
        numbers = ec.EllipticCurvePublicNumbers(self.x, self.y, ec.SECP256R1())
        return numbers.public_key()


def decode_client_id(client_id):
    """
    parse a CLIENT_ID string into a ClientIdentity, raising
    MalformedIdentity for anything but a P-256 uncompressed point.
    """
    if not isinstance(client_id, str):
        raise MalformedIdentity("expected client ID to be a string")

    parts = client_id.split(SEPARATOR)
    if len(parts) != 2:
        raise MalformedIdentity(
            "expected client ID to have exactly one {}. The client ID: {}".format(SEPARATOR, client_id))
    prefix, encoded = parts

    if prefix != P256_PREFIX:
        raise MalformedIdentity(
            "expected client ID to have prefix {}. The client ID: {}".format(P256_PREFIX, client_id))

    try:
        raw = base64.b64decode(encoded, validate=True)
    except ValueError as e:
        raise MalformedIdentity("public key is not valid base64: {}".format(e))

    if len(raw) != 65:
        raise MalformedIdentity("expected P-256 key of ID to be 65 bytes long, got {}".format(len(raw)))
    if raw[0] != UNCOMPRESSED_POINT_MARKER:
        raise MalformedIdentity("expected P-256 key of ID to have 0x04 as the first byte")

    identity = ClientIdentity(raw)
    try:
        identity.public_key()
    except ValueError:
        raise MalformedIdentity("public key of ID is not a point on P-256")
    return identity
