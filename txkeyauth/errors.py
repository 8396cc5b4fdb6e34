
class HandshakeError(Exception):
    pass


class MalformedIdentity(HandshakeError):
    pass


class InsufficientEntropy(HandshakeError):
    pass


class MalformedEnvelope(HandshakeError):
    pass


class MalformedResponse(HandshakeError):
    pass


class UnsupportedHash(HandshakeError):
    pass


class MalformedSignature(HandshakeError):
    pass


class SignatureLengthMismatch(MalformedSignature):
    pass


class HandshakeFailed(HandshakeError):
    """
    the client side of the handshake did not reach the authenticated
    state. the verdict deferred of a client protocol errbacks with one
    of these (or with the transport's own error).
    """


class SignatureMismatch(HandshakeFailed):
    pass


class UnexpectedMessage(HandshakeFailed):
    pass


class SigningFailed(HandshakeFailed):
    pass


class HandshakeTimeout(HandshakeFailed):
    pass
