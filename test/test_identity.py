
import base64

import pytest
from cryptography.hazmat.primitives.asymmetric import ec

from txkeyauth.errors import MalformedIdentity
from txkeyauth.identity import ClientIdentity, decode_client_id, encode_client_id
from txkeyauth.signing import client_id_for_public_key


def raw_point(private_key):
    numbers = private_key.public_key().public_numbers()
    return b"\x04" + numbers.x.to_bytes(32, "big") + numbers.y.to_bytes(32, "big")


def test_encode_client_id():
    raw = b"\x04" + b"\x01" * 64
    client_id = encode_client_id("P-256", raw)
    assert client_id == "WebCrypto-raw.EC.P-256$" + base64.b64encode(raw).decode("ascii")
    assert "\n" not in client_id


def test_round_trip():
    private_key = ec.generate_private_key(ec.SECP256R1())
    raw = raw_point(private_key)
    identity = decode_client_id(encode_client_id("P-256", raw))
    assert identity.curve_name == "P-256"
    assert identity.raw_public_key == raw

    expected = private_key.public_key().public_numbers()
    assert (identity.x, identity.y) == (expected.x, expected.y)
    assert identity.public_key().public_numbers() == expected


def test_client_id_for_public_key_matches_encoding():
    private_key = ec.generate_private_key(ec.SECP256R1())
    client_id = client_id_for_public_key(private_key.public_key())
    assert client_id == encode_client_id("P-256", raw_point(private_key))
    assert decode_client_id(client_id).client_id == client_id


def test_client_id_for_other_curves_is_refused():
    private_key = ec.generate_private_key(ec.SECP384R1())
    with pytest.raises(ValueError):
        client_id_for_public_key(private_key.public_key())


VALID_POINT = base64.b64encode(raw_point(ec.generate_private_key(ec.SECP256R1()))).decode("ascii")


@pytest.mark.parametrize("client_id", [
    "",
    "WebCrypto-raw.EC.P-256",
    "WebCrypto-raw.EC.P-256$" + VALID_POINT + "$",
    "WebCrypto-raw.EC.P-256$$" + VALID_POINT,
    "WebCrypto-raw.EC.P-384$" + VALID_POINT,
    "WebCrypto-raw.EC.p-256$" + VALID_POINT,
    "raw.EC.P-256$" + VALID_POINT,
    "WebCrypto-raw.EC.P-256$not base64!",
    "WebCrypto-raw.EC.P-256$" + base64.b64encode(b"\x04" + b"\x01" * 63).decode("ascii"),
    "WebCrypto-raw.EC.P-256$" + base64.b64encode(b"\x04" + b"\x01" * 65).decode("ascii"),
    "WebCrypto-raw.EC.P-256$" + base64.b64encode(b"\x02" + b"\x01" * 64).decode("ascii"),
    "WebCrypto-raw.EC.P-256$" + base64.urlsafe_b64encode(b"\xfb" * 65).decode("ascii"),
])
def test_malformed_client_ids(client_id):
    with pytest.raises(MalformedIdentity):
        decode_client_id(client_id)


def test_point_off_the_curve():
    raw = b"\x04" + (1).to_bytes(32, "big") + (1).to_bytes(32, "big")
    with pytest.raises(MalformedIdentity):
        decode_client_id(encode_client_id("P-256", raw))


@pytest.mark.parametrize("client_id", [None, 42, {"id": "x"}, ["WebCrypto-raw.EC.P-256$"]])
def test_non_string_client_ids(client_id):
    with pytest.raises(MalformedIdentity):
        decode_client_id(client_id)


def test_identity_requires_uncompressed_point():
    with pytest.raises(ValueError):
        ClientIdentity(b"\x04" * 33)
    with pytest.raises(ValueError):
        ClientIdentity(b"\x03" + b"\x00" * 64)
