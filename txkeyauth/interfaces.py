
from zope.interface import Interface


class IHandshakeMachine(Interface):
    """
    one side of the key authentication handshake. implementations do no
    IO of their own; the transport glue feeds them envelopes and they
    answer through the handlers they were constructed with.
    """

    def start():
        "the transport is open"

    def envelope_received(envelope):
        "a decoded envelope arrived from the peer"

    def envelope_malformed(reason):
        "the peer sent something that is not an envelope"

    def timed_out():
        "the handshake did not finish in time"

    def abort(reason):
        "the transport went away or a local fault occurred"


class ISigner(Interface):
    """
    the client's signing capability. the private key never has to leave
    whatever holds it; only sign() is exposed.
    """

    def sign(data):
        """
        ECDSA P-256 / SHA-256 sign data, returning the 64 byte r || s
        signature or a Deferred that fires with it.
        """
