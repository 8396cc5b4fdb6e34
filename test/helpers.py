
import base64
import struct

from twisted.internet.task import Clock
from twisted.internet.testing import StringTransport

from txkeyauth.envelopes import parse_envelope


class Recorder(object):
    """
    stands in for the transport glue around a bare state machine
    """

    def __init__(self):
        self.sent = []
        self.verdicts = []
        self.disconnects = 0

    def send(self, envelope):
        self.sent.append(envelope)

    def verdict(self, result):
        self.verdicts.append(result)

    def disconnect(self):
        self.disconnects += 1

    def handlers(self):
        return dict(
            send_envelope_handler=self.send,
            verdict_handler=self.verdict,
            disconnect_handler=self.disconnect,
        )


def frame(payload):
    return struct.pack("!I", len(payload)) + payload


def read_envelopes(transport):
    """
    decode and clear every envelope written to a StringTransport
    """
    data = transport.value()
    transport.clear()
    envelopes = []
    while data:
        (length,) = struct.unpack("!I", data[:4])
        envelopes.append(parse_envelope(data[4:4 + length]))
        data = data[4 + length:]
    return envelopes


def connect(protocol):
    transport = StringTransport()
    clock = Clock()
    protocol.callLater = clock.callLater
    protocol.makeConnection(transport)
    return transport, clock


def pump(client, client_transport, server, server_transport):
    while client_transport.value() or server_transport.value():
        data = client_transport.value()
        client_transport.clear()
        server.dataReceived(data)
        data = server_transport.value()
        server_transport.clear()
        client.dataReceived(data)


def result_of(d):
    results = []
    d.addBoth(results.append)
    assert results, "deferred has not fired"
    return results[0]


def sign_encoded_challenge(signer, encoded):
    signature = signer.sign(base64.b64decode(encoded))
    return base64.b64encode(signature).decode("ascii")
