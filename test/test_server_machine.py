
import base64

import pytest
from automat import NoTransition
from twisted.internet.error import ConnectionLost
from twisted.python.failure import Failure

from txkeyauth import envelopes
from txkeyauth.challenge import generate_challenge
from txkeyauth.envelopes import Envelope
from txkeyauth.server import ServerMachine, Verdict

from helpers import Recorder, sign_encoded_challenge


class CountingChallengeFactory(object):

    def __init__(self):
        self.challenges = []

    def __call__(self):
        challenge = generate_challenge()
        self.challenges.append(challenge)
        return challenge


def make_machine():
    recorder = Recorder()
    challenges = CountingChallengeFactory()
    machine = ServerMachine(challenge_factory=challenges, **recorder.handlers())
    machine.start()
    return machine, recorder, challenges


def response(signature, hash_name="SHA-256"):
    return envelopes.challenge_response_envelope(signature, hash_name)


def assert_rejected(recorder, client_id=None):
    assert recorder.verdicts == [Verdict(False, client_id)]
    assert recorder.disconnects == 1


def test_successful_handshake(signer):
    machine, recorder, challenges = make_machine()
    machine.envelope_received(envelopes.client_id_envelope(signer.client_id))

    [challenge] = recorder.sent
    assert challenge.type == envelopes.CHALLENGE
    assert base64.b64decode(challenge.data) == challenges.challenges[0].raw
    assert len(base64.b64decode(challenge.data)) == 128

    machine.envelope_received(response(sign_encoded_challenge(signer, challenge.data)))
    assert recorder.sent[1] == Envelope(envelopes.SIGNATURE_MATCHES)
    assert recorder.verdicts == [Verdict(True, signer.client_id)]
    assert recorder.disconnects == 0


def test_session_is_released_after_the_verdict(signer):
    machine, recorder, _ = make_machine()
    machine.envelope_received(envelopes.client_id_envelope(signer.client_id))
    machine.envelope_received(response(sign_encoded_challenge(signer, recorder.sent[0].data)))
    assert machine._session.challenge is None
    assert machine._session.identity is None


def test_malformed_client_id_never_issues_a_challenge(signer):
    machine, recorder, challenges = make_machine()
    client_id = signer.client_id.replace("P-256", "P-384")
    machine.envelope_received(envelopes.client_id_envelope(client_id))

    [error] = recorder.sent
    assert error.type == envelopes.CLIENT_ERROR
    assert error.data["message"] == "Failed to parse CLIENT_ID"
    assert "P-256" in error.data["error"]
    assert challenges.challenges == []
    assert_rejected(recorder, client_id)


def test_non_string_client_id():
    machine, recorder, _ = make_machine()
    machine.envelope_received(Envelope(envelopes.CLIENT_ID, {"id": 1}))
    assert recorder.sent[0].type == envelopes.CLIENT_ERROR
    assert_rejected(recorder)


def test_unexpected_first_message():
    machine, recorder, _ = make_machine()
    machine.envelope_received(Envelope(envelopes.SIGNATURE_MATCHES))
    assert recorder.sent == [
        Envelope(envelopes.CLIENT_ERROR, "Expected a CLIENT_ID event, but got SIGNATURE_MATCHES"),
    ]
    assert_rejected(recorder)


def test_challenge_response_before_client_id(signer):
    machine, recorder, challenges = make_machine()
    machine.envelope_received(response(base64.b64encode(b"\x01" * 64).decode("ascii")))
    assert recorder.sent == [
        Envelope(envelopes.CLIENT_ERROR, "Expected a CLIENT_ID event, but got CHALLENGE_RESPONSE"),
    ]
    assert challenges.challenges == []
    assert_rejected(recorder)


def test_repeated_client_id(signer):
    machine, recorder, _ = make_machine()
    machine.envelope_received(envelopes.client_id_envelope(signer.client_id))
    machine.envelope_received(envelopes.client_id_envelope(signer.client_id))
    assert recorder.sent[1] == Envelope(
        envelopes.CLIENT_ERROR, "Expected a CHALLENGE_RESPONSE event, but got CLIENT_ID")
    assert_rejected(recorder, signer.client_id)


def test_unexpected_message_after_challenge(signer):
    machine, recorder, _ = make_machine()
    machine.envelope_received(envelopes.client_id_envelope(signer.client_id))
    machine.envelope_received(Envelope(envelopes.SERVER_ERROR, {"message": "?"}))
    assert recorder.sent[1] == Envelope(
        envelopes.CLIENT_ERROR, "Expected a CHALLENGE_RESPONSE event, but got SERVER_ERROR")
    assert_rejected(recorder, signer.client_id)


def test_unsupported_hash(signer):
    machine, recorder, _ = make_machine()
    machine.envelope_received(envelopes.client_id_envelope(signer.client_id))
    machine.envelope_received(response(sign_encoded_challenge(signer, recorder.sent[0].data), "SHA-1"))
    assert recorder.sent[1].type == envelopes.UNSUPPORTED_HASH
    assert "SHA-1" in recorder.sent[1].data
    assert_rejected(recorder, signer.client_id)


def test_missing_hash_is_unsupported(signer):
    machine, recorder, _ = make_machine()
    machine.envelope_received(envelopes.client_id_envelope(signer.client_id))
    signature = sign_encoded_challenge(signer, recorder.sent[0].data)
    machine.envelope_received(Envelope(envelopes.CHALLENGE_RESPONSE, {"signature": signature}))
    assert recorder.sent[1].type == envelopes.UNSUPPORTED_HASH
    assert_rejected(recorder, signer.client_id)


def test_unsupported_hash_without_signature(signer):
    machine, recorder, _ = make_machine()
    machine.envelope_received(envelopes.client_id_envelope(signer.client_id))
    machine.envelope_received(Envelope(envelopes.CHALLENGE_RESPONSE, {"hash": "SHA-1"}))
    assert recorder.sent[1].type == envelopes.UNSUPPORTED_HASH
    assert "SHA-1" in recorder.sent[1].data
    assert_rejected(recorder, signer.client_id)


def test_missing_signature(signer):
    machine, recorder, _ = make_machine()
    machine.envelope_received(envelopes.client_id_envelope(signer.client_id))
    machine.envelope_received(Envelope(envelopes.CHALLENGE_RESPONSE, {"hash": "SHA-256"}))
    assert recorder.sent[1].type == envelopes.CLIENT_ERROR
    assert recorder.sent[1].data["message"] == "Failed to parse CHALLENGE_RESPONSE"
    assert_rejected(recorder, signer.client_id)


def test_signature_that_is_not_base64(signer):
    machine, recorder, _ = make_machine()
    machine.envelope_received(envelopes.client_id_envelope(signer.client_id))
    machine.envelope_received(response("not base64!"))
    assert recorder.sent[1].type == envelopes.CLIENT_ERROR
    assert recorder.sent[1].data["message"] == "Failed to parse CHALLENGE_RESPONSE"
    assert_rejected(recorder, signer.client_id)


def test_response_that_is_not_an_object(signer):
    machine, recorder, _ = make_machine()
    machine.envelope_received(envelopes.client_id_envelope(signer.client_id))
    machine.envelope_received(Envelope(envelopes.CHALLENGE_RESPONSE, "signature"))
    assert recorder.sent[1].type == envelopes.CLIENT_ERROR
    assert_rejected(recorder, signer.client_id)


def test_short_signature(signer):
    machine, recorder, _ = make_machine()
    machine.envelope_received(envelopes.client_id_envelope(signer.client_id))
    machine.envelope_received(response(base64.b64encode(b"\x01" * 32).decode("ascii")))
    assert recorder.sent[1] == Envelope(
        envelopes.SIGNATURE_MISMATCH, "Expected a 64 byte signature, but got 32 bytes")
    assert_rejected(recorder, signer.client_id)


def test_signature_by_another_key(signer, other_signer):
    machine, recorder, _ = make_machine()
    machine.envelope_received(envelopes.client_id_envelope(signer.client_id))
    machine.envelope_received(response(sign_encoded_challenge(other_signer, recorder.sent[0].data)))
    assert recorder.sent[1] == Envelope(envelopes.SIGNATURE_MISMATCH)
    assert_rejected(recorder, signer.client_id)


def test_malformed_envelope():
    machine, recorder, _ = make_machine()
    machine.envelope_malformed("message is not JSON")
    assert recorder.sent == [Envelope(
        envelopes.CLIENT_ERROR, {"message": "Failed to parse message", "error": "message is not JSON"})]
    assert_rejected(recorder)


@pytest.mark.parametrize("with_client_id", [False, True])
def test_timeout(signer, with_client_id):
    machine, recorder, _ = make_machine()
    if with_client_id:
        machine.envelope_received(envelopes.client_id_envelope(signer.client_id))
    machine.timed_out()
    assert recorder.sent[-1] == Envelope(envelopes.CLIENT_ERROR, "Handshake timed out")
    assert_rejected(recorder, signer.client_id if with_client_id else None)


def test_abort_sends_nothing(signer):
    machine, recorder, _ = make_machine()
    machine.envelope_received(envelopes.client_id_envelope(signer.client_id))
    reason = Failure(ConnectionLost())
    machine.abort(reason)
    assert len(recorder.sent) == 1
    assert recorder.verdicts == [reason]
    assert recorder.disconnects == 0
    assert machine._session.challenge is None


def test_no_input_after_a_verdict(signer):
    machine, recorder, _ = make_machine()
    machine.envelope_received(Envelope(envelopes.SIGNATURE_MATCHES))
    with pytest.raises(NoTransition):
        machine.envelope_received(envelopes.client_id_envelope(signer.client_id))
    assert len(recorder.verdicts) == 1


def test_each_handshake_gets_its_own_challenge(signer):
    first, first_recorder, _ = make_machine()
    second, second_recorder, _ = make_machine()
    first.envelope_received(envelopes.client_id_envelope(signer.client_id))
    second.envelope_received(envelopes.client_id_envelope(signer.client_id))
    assert first_recorder.sent[0].data != second_recorder.sent[0].data
