
import attr
from twisted.internet.endpoints import connectProtocol
from twisted.internet.protocol import Factory
from twisted.logger import Logger
from twisted.protocols.basic import Int32StringReceiver
from twisted.protocols.policies import TimeoutMixin
from twisted.python.failure import Failure

from txkeyauth.challenge import generate_challenge
from txkeyauth.client import ClientMachine
from txkeyauth.config import KeyAuthConfig
from txkeyauth.envelopes import parse_envelope
from txkeyauth.errors import HandshakeError, InsufficientEntropy, MalformedEnvelope
from txkeyauth.interfaces import IHandshakeMachine
from txkeyauth.server import ServerMachine, Verdict
from txkeyauth.util import SingleObserver


def create_handshake_protocol(machine_class, config, message_handler=None, **machine_kwargs):
    protocol = KeyAuthProtocol(config, message_handler)
    send_envelope_handler = lambda envelope: protocol._on_envelope(envelope)
    verdict_handler = lambda result: protocol._on_verdict(result)
    disconnect_handler = lambda: protocol._on_disconnect()
    machine = machine_class(
        send_envelope_handler=send_envelope_handler,
        verdict_handler=verdict_handler,
        disconnect_handler=disconnect_handler,
        **machine_kwargs)
    protocol.register_machine(machine)
    return protocol


def create_server_protocol(config, message_handler=None, challenge_factory=generate_challenge):
    return create_handshake_protocol(
        ServerMachine,
        config,
        message_handler,
        challenge_factory=challenge_factory)


def create_client_protocol(client_id, signer, config, message_handler=None):
    return create_handshake_protocol(
        ClientMachine,
        config,
        message_handler,
        client_id=client_id,
        signer=signer)


@attr.s(eq=False)
class KeyAuthServerFactory(Factory):

    config = attr.ib(default=attr.Factory(KeyAuthConfig), validator=attr.validators.instance_of(KeyAuthConfig))
    message_handler = attr.ib(default=None)

    def buildProtocol(self, addr):
        protocol = create_server_protocol(self.config, self.message_handler)
        protocol.factory = self
        return protocol


@attr.s(eq=False)
class KeyAuthClientFactory(Factory):

    client_id = attr.ib(validator=attr.validators.instance_of(str))
    signer = attr.ib()
    config = attr.ib(default=attr.Factory(KeyAuthConfig), validator=attr.validators.instance_of(KeyAuthConfig))
    message_handler = attr.ib(default=None)

    def buildProtocol(self, addr):
        protocol = create_client_protocol(self.client_id, self.signer, self.config, self.message_handler)
        protocol.factory = self
        return protocol


def authenticate(endpoint, client_id, signer, config=None, message_handler=None):
    """
    connect to endpoint and run the client side of the handshake.
    returns a deferred which fires with the authenticated protocol, or
    fails with HandshakeFailed or the connection error.
    """
    protocol = create_client_protocol(client_id, signer, config or KeyAuthConfig(), message_handler)
    d = connectProtocol(endpoint, protocol)
    d.addCallback(lambda _: protocol.when_done())
    d.addCallback(lambda _: protocol)
    return d


@attr.s(eq=False)
class KeyAuthProtocol(Int32StringReceiver, TimeoutMixin):
    """
    i carry one side of the key authentication handshake over a
    length-prefixed stream, one JSON envelope per string. once the
    handshake succeeds, strings are handed to message_handler.
    """
    log = Logger()

    config = attr.ib(validator=attr.validators.instance_of(KeyAuthConfig))
    message_handler = attr.ib(default=None)
    _machine = attr.ib(init=False, default=None)
    _when_done = attr.ib(init=False, default=attr.Factory(SingleObserver))
    _when_closed = attr.ib(init=False, default=attr.Factory(SingleObserver))
    _verdict = attr.ib(init=False, default=None)

    def __attrs_post_init__(self):
        self.MAX_LENGTH = self.config.max_message_length

    def register_machine(self, machine):
        assert IHandshakeMachine.providedBy(machine)
        self._machine = machine

    @property
    def done(self):
        return self._when_done.fired

    @property
    def authenticated(self):
        return isinstance(self._verdict, Verdict) and self._verdict.authenticated

    @property
    def verdict(self):
        return self._verdict

    def when_done(self):
        """
        returns a deferred which fires with the Verdict once the
        handshake is over, or fails if the connection was lost first.
        a client that is not authenticated fails with HandshakeFailed.
        """
        return self._when_done.when_fired()

    def when_closed(self):
        """
        returns a deferred which fires with None once the connection
        is gone, whether or not the handshake finished.
        """
        return self._when_closed.when_fired()

    def connectionMade(self):
        self.setTimeout(self.config.handshake_timeout)
        self._machine.start()

    def connectionLost(self, reason):
        self.setTimeout(None)
        if not self.done:
            self._machine.abort(reason)
        self._when_closed.fire(None)

    def timeoutConnection(self):
        if not self.done:
            self._machine.timed_out()

    def lengthLimitExceeded(self, length):
        self.log.warn("dropping connection, {length} byte message exceeds the limit", length=length)
        self.transport.abortConnection()

    def stringReceived(self, data):
        if self.done:
            if self.authenticated:
                self.messageReceived(data)
            return
        try:
            envelope = parse_envelope(data)
        except MalformedEnvelope as e:
            self._machine.envelope_malformed(str(e))
            return
        try:
            self._machine.envelope_received(envelope)
        except InsufficientEntropy:
            self.log.failure("cannot issue a challenge")
            self._machine.abort(Failure())
            self.transport.abortConnection()

    def messageReceived(self, data):
        if self.message_handler is not None:
            self.message_handler(self, data)

    def sendMessage(self, data):
        if not self.authenticated:
            raise HandshakeError("cannot send application messages before authenticating")
        self.sendString(data)

    def _on_envelope(self, envelope):
        self.sendString(envelope.to_bytes())

    def _on_verdict(self, result):
        self._verdict = result
        self.setTimeout(None)
        self._when_done.fire(result)

    def _on_disconnect(self):
        self.transport.loseConnection()
