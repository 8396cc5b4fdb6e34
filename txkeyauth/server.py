
import automat
import attr
import zope.interface
from twisted.logger import Logger

from txkeyauth import envelopes
from txkeyauth.challenge import generate_challenge
from txkeyauth.errors import MalformedIdentity, MalformedResponse, UnsupportedHash, SignatureLengthMismatch, MalformedSignature
from txkeyauth.identity import ClientIdentity, decode_client_id
from txkeyauth.interfaces import IHandshakeMachine
from txkeyauth.verify import verify_signature


@attr.s(frozen=True)
class Verdict(object):
    """
    the outcome of a completed handshake. client_id is the raw string
    the client sent (None if it never sent one); the verified
    public key can be recovered with decode_client_id.
    """
    authenticated = attr.ib(validator=attr.validators.instance_of(bool))
    client_id = attr.ib(default=None)


@attr.s
class HandshakeSession(object):
    """
    per connection server state: who the client claims to be and the
    challenge it owes us a signature for.
    """
    identity = attr.ib(default=None, validator=attr.validators.optional(attr.validators.instance_of(ClientIdentity)))
    challenge = attr.ib(default=None)

    def verify(self, signature):
        if self.identity is None or self.challenge is None:
            return False
        return verify_signature(self.identity.public_key(), self.challenge, signature)

    def discard(self):
        self.identity = None
        self.challenge = None


@attr.s
@zope.interface.implementer(IHandshakeMachine)
class ServerMachine(object):
    """
    I am the server-side state machine of the key authentication
    handshake:

    <- CLIENT_ID
    -> CHALLENGE
    <- CHALLENGE_RESPONSE
    -> SIGNATURE_MATCHES or SIGNATURE_MISMATCH

    any other message ends the handshake with an error message and a
    rejected verdict. one machine serves exactly one handshake.
    """
    _machine = automat.MethodicalMachine()
    log = Logger()

    send_envelope_handler = attr.ib(validator=attr.validators.is_callable())
    verdict_handler = attr.ib(validator=attr.validators.is_callable())
    disconnect_handler = attr.ib(validator=attr.validators.is_callable())
    challenge_factory = attr.ib(default=generate_challenge, validator=attr.validators.is_callable())

    _session = attr.ib(init=False, default=attr.Factory(HandshakeSession))
    _client_id = attr.ib(init=False, default=None)

    def start(self):
        self.log.debug("awaiting client id")

    def envelope_received(self, envelope):
        """
        turn an envelope into one of my inputs
        """
        if envelope.type == envelopes.CLIENT_ID:
            self._client_id_received(envelope.data)
        elif envelope.type == envelopes.CHALLENGE_RESPONSE:
            self._challenge_response_received(envelope.data)
        else:
            self.unexpected_message(envelope.type)

    def _client_id_received(self, client_id):
        try:
            identity = decode_client_id(client_id)
        except MalformedIdentity as e:
            self.identity_malformed(client_id, str(e))
        else:
            self.identity_received(client_id, identity)

    def _challenge_response_received(self, data):
        try:
            signature = envelopes.parse_challenge_response(data)
        except UnsupportedHash as e:
            self.hash_unsupported(str(e))
        except SignatureLengthMismatch as e:
            self.signature_mismatch(str(e))
        except (MalformedResponse, MalformedSignature) as e:
            self.response_malformed(str(e))
        else:
            if self._session.verify(signature):
                self.signature_verified()
            else:
                self.signature_mismatch(None)

    def _send_unexpected(self, expected, message_type):
        self.send_envelope_handler(envelopes.Envelope(
            envelopes.CLIENT_ERROR, "Expected a {} event, but got {}".format(expected, message_type)))

    # inputs

    @_machine.input()
    def identity_received(self, client_id, identity):
        "a well formed client id arrived"

    @_machine.input()
    def identity_malformed(self, client_id, reason):
        "a client id arrived that we cannot parse"

    @_machine.input()
    def hash_unsupported(self, reason):
        "the challenge response names a hash other than SHA-256"

    @_machine.input()
    def response_malformed(self, reason):
        "the challenge response payload cannot be parsed"

    @_machine.input()
    def signature_mismatch(self, reason):
        "the signature has the wrong length or does not verify"

    @_machine.input()
    def signature_verified(self):
        "the signature verifies against the client's key"

    @_machine.input()
    def unexpected_message(self, message_type):
        "a message type the handshake has no use for"

    @_machine.input()
    def envelope_malformed(self, reason):
        "the client sent something that is not an envelope"

    @_machine.input()
    def timed_out(self):
        "the client took too long"

    @_machine.input()
    def abort(self, reason):
        "transport lost or local fault"

    # outputs

    @_machine.output()
    def _remember_identity(self, identity):
        self._session.identity = identity

    @_machine.output()
    def _remember_client_id(self, client_id):
        if isinstance(client_id, str):
            self._client_id = client_id

    @_machine.output()
    def _issue_challenge(self):
        self._session.challenge = self.challenge_factory()
        self.send_envelope_handler(envelopes.challenge_envelope(self._session.challenge))

    @_machine.output()
    def _reject_client_id(self, reason):
        self.log.warn("rejecting client id: {reason}", reason=reason)
        self.send_envelope_handler(envelopes.Envelope(
            envelopes.CLIENT_ERROR, envelopes.error_detail("Failed to parse CLIENT_ID", reason)))

    @_machine.output()
    def _reject_hash(self, reason):
        self.send_envelope_handler(envelopes.Envelope(envelopes.UNSUPPORTED_HASH, reason))

    @_machine.output()
    def _reject_response(self, reason):
        self.send_envelope_handler(envelopes.Envelope(
            envelopes.CLIENT_ERROR, envelopes.error_detail("Failed to parse CHALLENGE_RESPONSE", reason)))

    @_machine.output()
    def _reject_signature(self, reason):
        self.send_envelope_handler(envelopes.Envelope(envelopes.SIGNATURE_MISMATCH, reason))

    @_machine.output()
    def _accept_signature(self):
        self.send_envelope_handler(envelopes.Envelope(envelopes.SIGNATURE_MATCHES))

    @_machine.output()
    def _expected_client_id(self, message_type):
        self._send_unexpected(envelopes.CLIENT_ID, message_type)

    @_machine.output()
    def _expected_challenge_response(self, message_type):
        self._send_unexpected(envelopes.CHALLENGE_RESPONSE, message_type)

    @_machine.output()
    def _early_challenge_response(self):
        self._send_unexpected(envelopes.CLIENT_ID, envelopes.CHALLENGE_RESPONSE)

    @_machine.output()
    def _repeated_client_id(self):
        self._send_unexpected(envelopes.CHALLENGE_RESPONSE, envelopes.CLIENT_ID)

    @_machine.output()
    def _reject_envelope(self, reason):
        self.send_envelope_handler(envelopes.Envelope(
            envelopes.CLIENT_ERROR, envelopes.error_detail("Failed to parse message", reason)))

    @_machine.output()
    def _reject_timeout(self):
        self.send_envelope_handler(envelopes.Envelope(envelopes.CLIENT_ERROR, "Handshake timed out"))

    @_machine.output()
    def _authenticated(self):
        self._session.discard()
        self.log.info("client {client_id} authenticated", client_id=self._client_id)
        self.verdict_handler(Verdict(True, self._client_id))

    @_machine.output()
    def _rejected(self):
        self._session.discard()
        self.log.warn("client {client_id} rejected", client_id=self._client_id)
        self.verdict_handler(Verdict(False, self._client_id))
        self.disconnect_handler()

    @_machine.output()
    def _aborted(self, reason):
        self._session.discard()
        self.verdict_handler(reason)

    # states

    @_machine.state(initial=True)
    def await_client_id(self):
        "waiting for the client to say who it is"

    @_machine.state()
    def await_challenge_response(self):
        "challenge sent, waiting for the signature"

    @_machine.state()
    def authenticated(self):
        "the client proved possession of its key"

    @_machine.state()
    def rejected(self):
        "the handshake failed"

    await_client_id.upon(identity_received, enter=await_challenge_response,
                         outputs=[_remember_client_id, _remember_identity, _issue_challenge])
    await_client_id.upon(identity_malformed, enter=rejected,
                         outputs=[_remember_client_id, _reject_client_id, _rejected])
    await_client_id.upon(unexpected_message, enter=rejected, outputs=[_expected_client_id, _rejected])
    await_client_id.upon(hash_unsupported, enter=rejected, outputs=[_early_challenge_response, _rejected])
    await_client_id.upon(response_malformed, enter=rejected, outputs=[_early_challenge_response, _rejected])
    await_client_id.upon(signature_mismatch, enter=rejected, outputs=[_early_challenge_response, _rejected])
    await_client_id.upon(signature_verified, enter=rejected, outputs=[_early_challenge_response, _rejected])
    await_client_id.upon(envelope_malformed, enter=rejected, outputs=[_reject_envelope, _rejected])
    await_client_id.upon(timed_out, enter=rejected, outputs=[_reject_timeout, _rejected])
    await_client_id.upon(abort, enter=rejected, outputs=[_aborted])

    await_challenge_response.upon(hash_unsupported, enter=rejected, outputs=[_reject_hash, _rejected])
    await_challenge_response.upon(response_malformed, enter=rejected, outputs=[_reject_response, _rejected])
    await_challenge_response.upon(signature_mismatch, enter=rejected, outputs=[_reject_signature, _rejected])
    await_challenge_response.upon(signature_verified, enter=authenticated,
                                  outputs=[_accept_signature, _authenticated])
    await_challenge_response.upon(identity_received, enter=rejected, outputs=[_repeated_client_id, _rejected])
    await_challenge_response.upon(identity_malformed, enter=rejected, outputs=[_repeated_client_id, _rejected])
    await_challenge_response.upon(unexpected_message, enter=rejected,
                                  outputs=[_expected_challenge_response, _rejected])
    await_challenge_response.upon(envelope_malformed, enter=rejected, outputs=[_reject_envelope, _rejected])
    await_challenge_response.upon(timed_out, enter=rejected, outputs=[_reject_timeout, _rejected])
    await_challenge_response.upon(abort, enter=rejected, outputs=[_aborted])
