
import base64

from Crypto.Util import number
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import Prehashed, encode_dss_signature

from txkeyauth.errors import MalformedSignature, SignatureLengthMismatch


SIGNATURE_LENGTH = 64


def decode_signature(encoded):
    """
    base64 decode a raw r || s signature, checking its length.
    """
    try:
        signature = base64.b64decode(encoded, validate=True)
    except ValueError as e:
        raise MalformedSignature("signature is not valid base64: {}".format(e))
    if len(signature) != SIGNATURE_LENGTH:
        raise SignatureLengthMismatch(
            "Expected a {} byte signature, but got {} bytes".format(SIGNATURE_LENGTH, len(signature)))
    return signature


def split_signature(signature):
    """
    the two big-endian halves of a raw signature as (r, s)
    """
    half = SIGNATURE_LENGTH // 2
    return number.bytes_to_long(signature[:half]), number.bytes_to_long(signature[half:])


def verify_signature(public_key, challenge, signature):
    """
    True if signature is a valid ECDSA signature by public_key over the
    SHA-256 digest of the challenge.

    signature is the 64 byte r || s form, not DER.
    """
    if len(signature) != SIGNATURE_LENGTH:
        return False
    r, s = split_signature(signature)
    try:
        public_key.verify(
            encode_dss_signature(r, s),
            challenge.digest,
            ec.ECDSA(Prehashed(hashes.SHA256())),
        )
    except InvalidSignature:
        return False
    return True
