import pytest

from support import generate_key, public_pem


@pytest.fixture(scope="session")
def private_key():
    return generate_key()


@pytest.fixture(scope="session")
def public_key(private_key):
    return private_key.public_key()


@pytest.fixture(scope="session")
def public_key_pem(private_key):
    return public_pem(private_key)
