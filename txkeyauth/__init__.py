
from txkeyauth.challenge import Challenge, generate_challenge
from txkeyauth.client import ClientMachine
from txkeyauth.config import KeyAuthConfig
from txkeyauth.envelopes import Envelope, parse_envelope
from txkeyauth.identity import ClientIdentity, decode_client_id, encode_client_id
from txkeyauth.protocol import create_client_protocol, create_server_protocol, authenticate
from txkeyauth.protocol import KeyAuthClientFactory, KeyAuthServerFactory, KeyAuthProtocol
from txkeyauth.server import ServerMachine, Verdict
from txkeyauth.signing import SoftwareSigner, client_id_for_public_key
from txkeyauth.verify import verify_signature


__all__ = [
    "Challenge",
    "generate_challenge",
    "ClientIdentity",
    "decode_client_id",
    "encode_client_id",
    "verify_signature",
    "Envelope",
    "parse_envelope",
    "ServerMachine",
    "ClientMachine",
    "Verdict",
    "SoftwareSigner",
    "client_id_for_public_key",
    "KeyAuthConfig",
    "create_client_protocol",
    "create_server_protocol",
    "authenticate",
    "KeyAuthClientFactory",
    "KeyAuthServerFactory",
    "KeyAuthProtocol",
]
