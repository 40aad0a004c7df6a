# tests/test_invites.py

import string

import pytest

from invite_service.services.invites import (
    TOKEN_ALPHABET,
    TOKEN_LENGTH,
    generate_invite_token,
)


def test_default_alphabet_is_uppercase_and_digits():
    assert TOKEN_ALPHABET == string.ascii_uppercase + string.digits
    assert TOKEN_LENGTH == 7


def test_generate_invite_token_shape():
    for _ in range(50):
        t = generate_invite_token()
        assert len(t) == TOKEN_LENGTH
        assert t.isupper() or t.isdigit()
        assert set(t) <= set(TOKEN_ALPHABET)


def test_generate_invite_token_custom_keyspace():
    assert generate_invite_token("Q", 4) == "QQQQ"
    assert set(generate_invite_token("01", 32)) <= {"0", "1"}


@pytest.mark.parametrize("alphabet,length", [("", 7), ("AB", 0), ("AB", -1)])
def test_generate_invite_token_rejects_empty_keyspace(alphabet, length):
    with pytest.raises(ValueError):
        generate_invite_token(alphabet, length)
