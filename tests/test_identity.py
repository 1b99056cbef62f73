from __future__ import annotations

import pytest

from dialect_quiz.services.identity import IdentityProvider


@pytest.fixture()
def identity(temp_db):
    return IdentityProvider(temp_db)


def test_sign_in_issues_token(identity):
    result = identity.sign_in("Salma", "Salma@Example.com")

    assert result["token"]
    assert result["user"]["display_name"] == "Salma"
    assert result["user"]["email"] == "salma@example.com"
    assert identity.get_current_user(result["token"])["id"] == result["user"]["id"]


def test_same_email_signs_into_same_account(identity):
    first = identity.sign_in("Salma", "salma@example.com")
    second = identity.sign_in("Salma again", "salma@example.com")

    assert first["user"]["id"] == second["user"]["id"]
    assert first["token"] != second["token"]


def test_sign_out_revokes_token(identity):
    token = identity.sign_in("Omar")["token"]

    assert identity.sign_out(token) is True
    assert identity.get_current_user(token) is None
    assert identity.sign_out(token) is False


def test_unknown_or_missing_token(identity):
    assert identity.get_current_user(None) is None
    assert identity.get_current_user("not-a-token") is None


def test_blank_display_name_rejected(identity):
    with pytest.raises(ValueError):
        identity.sign_in("   ")


def test_update_profile(identity):
    user = identity.sign_in("Omar")["user"]

    updated = identity.update_profile(user["id"], display_name="Omar K", avatar="camel")

    assert updated["display_name"] == "Omar K"
    assert updated["avatar"] == "camel"


def test_update_profile_email_conflict(identity):
    identity.sign_in("Salma", "salma@example.com")
    omar = identity.sign_in("Omar", "omar@example.com")["user"]

    with pytest.raises(ValueError):
        identity.update_profile(omar["id"], email="salma@example.com")


def test_update_profile_unknown_user(identity):
    with pytest.raises(ValueError):
        identity.update_profile(999, display_name="Ghost")
