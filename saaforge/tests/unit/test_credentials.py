from __future__ import annotations

from saaforge.services.auth.passwords import hash_password, verify_password
from saaforge.services.auth.sessions import TOKEN_PREFIX, generate_session_token, hash_session_token, parse_bearer_token


def test_password_round_trip_uses_random_salt() -> None:
    digest, salt = hash_password("s3cret-pass")
    other_digest, other_salt = hash_password("s3cret-pass")
    assert salt != other_salt
    assert digest != other_digest
    assert verify_password("s3cret-pass", digest, salt) is True
    assert verify_password("wrong", digest, salt) is False


def test_session_tokens_store_only_a_hash() -> None:
    token_id, raw_token, token_prefix, token_hash = generate_session_token()
    assert raw_token.startswith(f"{TOKEN_PREFIX}{token_id}_")
    assert raw_token.startswith(token_prefix)
    assert token_hash == hash_session_token(raw_token)
    assert raw_token not in token_hash


def test_parse_bearer_token() -> None:
    assert parse_bearer_token("Bearer abc") == "abc"
    assert parse_bearer_token("bearer abc") == "abc"
    assert parse_bearer_token("Basic abc") is None
    assert parse_bearer_token("Bearer") is None
    assert parse_bearer_token(None) is None
