
import base64

import automat
import attr
import zope.interface
from twisted.internet import defer
from twisted.logger import Logger
from twisted.python.failure import Failure

from txkeyauth import envelopes
from txkeyauth.errors import (
    HandshakeTimeout,
    SignatureMismatch,
    SigningFailed,
    UnexpectedMessage,
)
from txkeyauth.interfaces import IHandshakeMachine, ISigner
from txkeyauth.server import Verdict


SERVER_ERRORS = frozenset([
    envelopes.CLIENT_ERROR,
    envelopes.SERVER_ERROR,
    envelopes.UNSUPPORTED_HASH,
])


def _provides_signer(instance, attribute, value):
    if not ISigner.providedBy(value):
        raise TypeError("{} must provide ISigner".format(attribute.name))


@attr.s
@zope.interface.implementer(IHandshakeMachine)
class ClientMachine(object):
    """
    I am the client-side state machine of the key authentication
    handshake. I announce client_id, have signer sign whatever
    challenge the server sends and wait for the server's verdict.

    the signer may answer synchronously or with a Deferred; either
    way the private key stays with the signer.
    """
    _machine = automat.MethodicalMachine()
    log = Logger()

    client_id = attr.ib(validator=attr.validators.instance_of(str))
    signer = attr.ib(validator=_provides_signer)
    send_envelope_handler = attr.ib(validator=attr.validators.is_callable())
    verdict_handler = attr.ib(validator=attr.validators.is_callable())
    disconnect_handler = attr.ib(validator=attr.validators.is_callable())

    def envelope_received(self, envelope):
        if envelope.type == envelopes.CHALLENGE:
            try:
                challenge = decode_challenge(envelope.data)
            except ValueError as e:
                self.challenge_malformed(str(e))
            else:
                self.challenge_received(challenge)
        elif envelope.type == envelopes.SIGNATURE_MATCHES:
            self.signature_matches()
        elif envelope.type == envelopes.SIGNATURE_MISMATCH:
            self.signature_mismatch(envelope.data)
        else:
            self.unexpected_message(envelope)

    def _fail(self, error):
        self.log.warn("handshake failed: {error}", error=error)
        self.verdict_handler(Failure(error))
        self.disconnect_handler()

    @staticmethod
    def _check_signature(signature):
        if not isinstance(signature, bytes):
            raise SigningFailed("signer returned {!r}, not bytes".format(type(signature)))
        return signature

    # inputs

    @_machine.input()
    def start(self):
        "the transport is open"

    @_machine.input()
    def challenge_received(self, challenge):
        "the server sent its challenge"

    @_machine.input()
    def challenge_malformed(self, reason):
        "the server sent a challenge we cannot decode"

    @_machine.input()
    def challenge_signed(self, signature):
        "the signer produced a signature"

    @_machine.input()
    def signing_failed(self, failure):
        "the signer failed"

    @_machine.input()
    def signature_matches(self):
        "the server accepted our signature"

    @_machine.input()
    def signature_mismatch(self, detail):
        "the server rejected our signature"

    @_machine.input()
    def unexpected_message(self, envelope):
        "a message we have no use for, including server errors"

    @_machine.input()
    def envelope_malformed(self, reason):
        "the server sent something that is not an envelope"

    @_machine.input()
    def timed_out(self):
        "the server took too long"

    @_machine.input()
    def abort(self, reason):
        "transport lost"

    # outputs

    @_machine.output()
    def _send_client_id(self):
        self.send_envelope_handler(envelopes.client_id_envelope(self.client_id))

    @_machine.output()
    def _sign_challenge(self, challenge):
        d = defer.maybeDeferred(self.signer.sign, challenge)
        d.addCallback(self._check_signature)
        d.addCallbacks(self.challenge_signed, self.signing_failed)

    @_machine.output()
    def _send_response(self, signature):
        encoded = base64.b64encode(signature).decode("ascii")
        self.send_envelope_handler(envelopes.challenge_response_envelope(encoded))

    @_machine.output()
    def _authenticated(self):
        self.log.info("authenticated as {client_id}", client_id=self.client_id)
        self.verdict_handler(Verdict(True, self.client_id))

    @_machine.output()
    def _fail_mismatch(self, detail):
        self._fail(SignatureMismatch(detail or "Signature mismatch"))

    @_machine.output()
    def _fail_signing(self, failure):
        self._fail(SigningFailed("failed to sign challenge: {}".format(failure.getErrorMessage())))

    @_machine.output()
    def _fail_unexpected(self, envelope):
        if envelope.type in SERVER_ERRORS:
            self._fail(UnexpectedMessage("server sent {}: {}".format(envelope.type, envelope.data)))
        else:
            self._fail(UnexpectedMessage("unexpected {} message".format(envelope.type)))

    @_machine.output()
    def _fail_out_of_order(self):
        self._fail(UnexpectedMessage("message arrived out of order"))

    @_machine.output()
    def _fail_malformed(self, reason):
        self._fail(UnexpectedMessage("malformed message from server: {}".format(reason)))

    @_machine.output()
    def _fail_timeout(self):
        self._fail(HandshakeTimeout("server did not complete the handshake in time"))

    @_machine.output()
    def _aborted(self, reason):
        self.verdict_handler(reason)

    # states

    @_machine.state(initial=True)
    def unconnected(self):
        "transport not open yet"

    @_machine.state()
    def connecting(self):
        "client id sent, waiting for the challenge"

    @_machine.state()
    def signing(self):
        "waiting for the signer"

    @_machine.state()
    def sent_response(self):
        "challenge response sent, waiting for the verdict"

    @_machine.state()
    def authenticated(self):
        "the server accepted our signature"

    @_machine.state()
    def failed(self):
        "the handshake failed"

    unconnected.upon(start, enter=connecting, outputs=[_send_client_id])
    unconnected.upon(abort, enter=failed, outputs=[_aborted])

    connecting.upon(challenge_received, enter=signing, outputs=[_sign_challenge])
    connecting.upon(challenge_malformed, enter=failed, outputs=[_fail_malformed])
    connecting.upon(signature_matches, enter=failed, outputs=[_fail_out_of_order])
    connecting.upon(signature_mismatch, enter=failed, outputs=[_fail_out_of_order])
    connecting.upon(unexpected_message, enter=failed, outputs=[_fail_unexpected])
    connecting.upon(envelope_malformed, enter=failed, outputs=[_fail_malformed])
    connecting.upon(timed_out, enter=failed, outputs=[_fail_timeout])
    connecting.upon(abort, enter=failed, outputs=[_aborted])

    signing.upon(challenge_signed, enter=sent_response, outputs=[_send_response])
    signing.upon(signing_failed, enter=failed, outputs=[_fail_signing])
    signing.upon(challenge_received, enter=failed, outputs=[_fail_out_of_order])
    signing.upon(challenge_malformed, enter=failed, outputs=[_fail_out_of_order])
    signing.upon(signature_matches, enter=failed, outputs=[_fail_out_of_order])
    signing.upon(signature_mismatch, enter=failed, outputs=[_fail_out_of_order])
    signing.upon(unexpected_message, enter=failed, outputs=[_fail_unexpected])
    signing.upon(envelope_malformed, enter=failed, outputs=[_fail_malformed])
    signing.upon(timed_out, enter=failed, outputs=[_fail_timeout])
    signing.upon(abort, enter=failed, outputs=[_aborted])

    sent_response.upon(signature_matches, enter=authenticated, outputs=[_authenticated])
    sent_response.upon(signature_mismatch, enter=failed, outputs=[_fail_mismatch])
    sent_response.upon(challenge_received, enter=failed, outputs=[_fail_out_of_order])
    sent_response.upon(challenge_malformed, enter=failed, outputs=[_fail_out_of_order])
    sent_response.upon(unexpected_message, enter=failed, outputs=[_fail_unexpected])
    sent_response.upon(envelope_malformed, enter=failed, outputs=[_fail_malformed])
    sent_response.upon(timed_out, enter=failed, outputs=[_fail_timeout])
    sent_response.upon(abort, enter=failed, outputs=[_aborted])

    # the signer may finish after we gave up
    failed.upon(challenge_signed, enter=failed, outputs=[])
    failed.upon(signing_failed, enter=failed, outputs=[])


def decode_challenge(data):
    """
    raises ValueError unless data is a non-empty base64 string
    """
    if not isinstance(data, str):
        raise ValueError("challenge is not a string")
    try:
        challenge = base64.b64decode(data, validate=True)
    except ValueError as e:
        raise ValueError("challenge is not valid base64: {}".format(e))
    if not challenge:
        raise ValueError("challenge is empty")
    return challenge
