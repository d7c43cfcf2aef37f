import pytest

from school_core.auth.errors import HashingError
from school_core.auth.passwords import PasswordHasher


@pytest.fixture
def hasher():
    return PasswordHasher(rounds=4)


def test_hash_is_salted_and_verifies(hasher):
    first = hasher.hash("secret")
    second = hasher.hash("secret")

    assert first != "secret"
    assert first != second
    assert hasher.verify("secret", first)
    assert hasher.verify("secret", second)


def test_verify_mismatch_returns_false(hasher):
    hashed = hasher.hash("secret")
    assert hasher.verify("wrong", hashed) is False


def test_verify_never_raises_on_bad_input(hasher):
    assert hasher.verify("secret", "not-a-bcrypt-hash") is False
    assert hasher.verify("secret", "") is False
    assert hasher.verify("", hasher.hash("secret")) is False


def test_per_call_cost_is_used(hasher):
    hashed = hasher.hash("secret", rounds=5)
    assert hashed.startswith("$2b$05$")
    assert hasher.verify("secret", hashed)


@pytest.mark.parametrize("rounds", [0, 3, 32])
def test_cost_out_of_range(hasher, rounds):
    with pytest.raises(HashingError):
        hasher.hash("secret", rounds=rounds)


def test_constructor_rejects_bad_cost():
    with pytest.raises(HashingError):
        PasswordHasher(rounds=2)


def test_empty_password_rejected(hasher):
    with pytest.raises(HashingError):
        hasher.hash("")


def test_long_passwords_are_truncated_not_rejected(hasher):
    password = "x" * 100
    hashed = hasher.hash(password)
    assert hasher.verify(password, hashed)


def test_dummy_hash_matches_configured_cost(hasher):
    assert hasher.dummy_hash.startswith("$2b$04$")
    assert hasher.verify("secret", hasher.dummy_hash) is False
