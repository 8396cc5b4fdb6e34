
import attr
import zope.interface
from Crypto.Util import number
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import decode_dss_signature

from txkeyauth.identity import P256, encode_client_id
from txkeyauth.interfaces import ISigner
from txkeyauth.verify import SIGNATURE_LENGTH


def client_id_for_public_key(public_key):
    """
    the CLIENT_ID string announcing a P-256 public key
    """
    if not isinstance(public_key.curve, ec.SECP256R1):
        raise ValueError("only P-256 keys are supported, not {}".format(public_key.curve.name))
    raw = public_key.public_bytes(
        encoding=serialization.Encoding.X962,
        format=serialization.PublicFormat.UncompressedPoint,
    )
    return encode_client_id(P256, raw)


def raw_signature(der_signature):
    """
    convert a DER encoded ECDSA signature into fixed width r || s
    """
    r, s = decode_dss_signature(der_signature)
    half = SIGNATURE_LENGTH // 2
    return number.long_to_bytes(r, half) + number.long_to_bytes(s, half)


def _is_p256_private_key(instance, attribute, value):
    if not isinstance(value, ec.EllipticCurvePrivateKey) or not isinstance(value.curve, ec.SECP256R1):
        raise TypeError("{} must be a P-256 private key".format(attribute.name))


@attr.s(repr=False)
@zope.interface.implementer(ISigner)
class SoftwareSigner(object):
    """
    i sign challenges with a private key held in process memory.
    """
    private_key = attr.ib(validator=_is_p256_private_key)

    @classmethod
    def generate(cls):
        return cls(ec.generate_private_key(ec.SECP256R1()))

    @property
    def client_id(self):
        return client_id_for_public_key(self.private_key.public_key())

    def sign(self, data):
        return raw_signature(self.private_key.sign(data, ec.ECDSA(hashes.SHA256())))

    def __repr__(self):
        return "<SoftwareSigner {}>".format(self.client_id)
