
import attr
import simplejson as json

from txkeyauth.errors import MalformedEnvelope, MalformedResponse, UnsupportedHash
from txkeyauth.verify import decode_signature


CLIENT_ID = "CLIENT_ID"
CHALLENGE = "CHALLENGE"
CHALLENGE_RESPONSE = "CHALLENGE_RESPONSE"
SIGNATURE_MATCHES = "SIGNATURE_MATCHES"
SIGNATURE_MISMATCH = "SIGNATURE_MISMATCH"
UNSUPPORTED_HASH = "UNSUPPORTED_HASH"
CLIENT_ERROR = "CLIENT_ERROR"
SERVER_ERROR = "SERVER_ERROR"

MESSAGE_TYPES = frozenset([
    CLIENT_ID,
    CHALLENGE,
    CHALLENGE_RESPONSE,
    SIGNATURE_MATCHES,
    SIGNATURE_MISMATCH,
    UNSUPPORTED_HASH,
    CLIENT_ERROR,
    SERVER_ERROR,
])

SHA256 = "SHA-256"


@attr.s(frozen=True)
class Envelope(object):
    """
    the {"type": ..., "data": ...} unit of the handshake wire protocol.
    """
    type = attr.ib(validator=attr.validators.in_(MESSAGE_TYPES))
    data = attr.ib(default=None)

    def to_bytes(self):
        message = {"type": self.type}
        if self.data is not None:
            message["data"] = self.data
        return json.dumps(message, separators=(",", ":")).encode("utf-8")


def parse_envelope(datagram):
    try:
        message = json.loads(datagram.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError, RecursionError) as e:
        raise MalformedEnvelope("message is not JSON: {}".format(e))
    if not isinstance(message, dict):
        raise MalformedEnvelope("message is not a JSON object")
    message_type = message.get("type")
    if not isinstance(message_type, str):
        raise MalformedEnvelope("message has no type")
    if message_type not in MESSAGE_TYPES:
        raise MalformedEnvelope("unknown message type {}".format(message_type))
    return Envelope(message_type, message.get("data"))


def error_detail(message, error=None):
    """
    the {message, error} payload of CLIENT_ERROR and SERVER_ERROR
    """
    detail = {"message": message}
    if error is not None:
        detail["error"] = str(error)
    return detail


def client_id_envelope(client_id):
    return Envelope(CLIENT_ID, client_id)


def challenge_envelope(challenge):
    return Envelope(CHALLENGE, challenge.encoded)


def challenge_response_envelope(encoded_signature, hash_name=SHA256):
    return Envelope(CHALLENGE_RESPONSE, {"signature": encoded_signature, "hash": hash_name})


def parse_challenge_response(data):
    """
    check a CHALLENGE_RESPONSE payload and return the decoded 64 byte
    signature. the hash is checked first, a missing one counting as "".
    raises UnsupportedHash, MalformedResponse, MalformedSignature or
    SignatureLengthMismatch.
    """
    if not isinstance(data, dict):
        raise MalformedResponse("expected an object with signature and hash")
    hash_name = data.get("hash")
    if hash_name is None:
        hash_name = ""
    if hash_name != SHA256:
        raise UnsupportedHash(
            "Got hash of type {}, but the only supported hash currently is {}".format(hash_name, SHA256))
    signature = data.get("signature")
    if not isinstance(signature, str):
        raise MalformedResponse("signature must be a string")
    return decode_signature(signature)
