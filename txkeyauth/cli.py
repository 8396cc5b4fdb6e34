
import sys

import attr
from twisted.internet import defer, endpoints, task
from twisted.internet.error import ConnectionClosed
from twisted.logger import Logger, globalLogBeginner, textFileLogObserver
from twisted.python import usage

from txkeyauth.config import KeyAuthConfig
from txkeyauth.protocol import KeyAuthServerFactory, authenticate
from txkeyauth.signing import SoftwareSigner


log = Logger()


class _CommonOptions(usage.Options):
    optParameters = [
        ["port", "p", 8080, "TCP port", int],
        ["timeout", "t", 30.0, "seconds allowed for the handshake", float],
        ["max-message-length", None, 65536, "largest accepted message in bytes", int],
    ]

    def config(self):
        return KeyAuthConfig(
            handshake_timeout=self["timeout"],
            max_message_length=self["max-message-length"],
        )


class ServeOptions(_CommonOptions):
    """
    authenticate clients, then echo whatever they send
    """


class ConnectOptions(_CommonOptions):
    """
    authenticate with a fresh P-256 key, send a message, print the echo
    """
    optParameters = [
        ["host", "H", "127.0.0.1", "server host"],
        ["message", "m", "hello", "message to send once authenticated"],
    ]


class Options(usage.Options):
    subCommands = [
        ["serve", None, ServeOptions, "run an echo server behind the handshake"],
        ["connect", None, ConnectOptions, "authenticate against a server"],
    ]

    def postOptions(self):
        if self.subCommand is None:
            raise usage.UsageError("a command is required")


def _echo(protocol, data):
    protocol.sendMessage(data)


@attr.s
class FirstReply(object):
    """
    catches the first application message on a connection. later
    messages are ignored; closing before one arrives is an error.
    """
    _reply = attr.ib(init=False, default=attr.Factory(defer.Deferred))

    def message_received(self, protocol, data):
        if not self._reply.called:
            self._reply.callback(data)

    def connection_closed(self, _):
        if not self._reply.called:
            self._reply.errback(ConnectionClosed("connection closed before a reply arrived"))

    def when_received(self):
        return self._reply


def serve(reactor, options):
    endpoint = endpoints.TCP4ServerEndpoint(reactor, options["port"])
    d = endpoint.listen(KeyAuthServerFactory(options.config(), _echo))
    d.addCallback(lambda port: log.info("listening on {address}", address=port.getHost()))
    d.addCallback(lambda _: defer.Deferred())
    return d


@defer.inlineCallbacks
def connect(reactor, options):
    signer = SoftwareSigner.generate()
    reply = FirstReply()
    endpoint = endpoints.TCP4ClientEndpoint(reactor, options["host"], options["port"])
    protocol = yield authenticate(
        endpoint,
        signer.client_id,
        signer,
        options.config(),
        reply.message_received,
    )
    protocol.when_closed().addCallback(reply.connection_closed)
    log.info("authenticated as {client_id}", client_id=signer.client_id)
    protocol.sendMessage(options["message"].encode("utf-8"))
    data = yield reply.when_received()
    print(data.decode("utf-8"))
    protocol.transport.loseConnection()


def main(argv=None):
    options = Options()
    try:
        options.parseOptions(argv if argv is not None else sys.argv[1:])
    except usage.UsageError as e:
        print("{}\n{}".format(options, e))
        sys.exit(1)

    globalLogBeginner.beginLoggingTo([textFileLogObserver(sys.stdout)])
    command = {"serve": serve, "connect": connect}[options.subCommand]
    task.react(command, [options.subOptions])
