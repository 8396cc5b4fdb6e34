
import pytest

from txkeyauth.signing import SoftwareSigner


@pytest.fixture
def signer():
    return SoftwareSigner.generate()


@pytest.fixture
def other_signer():
    return SoftwareSigner.generate()
