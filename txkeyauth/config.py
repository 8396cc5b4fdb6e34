
import attr

from txkeyauth.util import is_positive


@attr.s(frozen=True)
class KeyAuthConfig(object):
    """
    handshake_timeout: seconds a peer gets to finish the whole handshake
    max_message_length: largest frame accepted, in bytes
    """
    handshake_timeout = attr.ib(default=30.0, converter=float, validator=is_positive)
    max_message_length = attr.ib(default=65536, converter=int, validator=is_positive)
