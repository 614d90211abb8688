"""Unit tests for auth/identity.py -- register, login, restore, logout.

Sessions are plain dicts here; the API tests cover the Starlette session.

Covers:
- register: success signs the user in; duplicate email is a field error with
  no second row; a failing store surfaces the generic registration message
- login: wrong password and unknown email share one message; remember-me
  returns a token and CookieAction.set, otherwise CookieAction.clear
- restore: session wins; a valid token re-establishes the session; a bad
  token asks for the cookies to be cleared
- current_record clears a stale session; logout clears everything
"""

import pytest

from auth.identity import (
    INVALID_CREDENTIALS,
    SESSION_USER_EMAIL,
    SESSION_USER_ID,
    IdentityService,
    current_context,
)
from auth.models import CookieAction, SessionContext
from auth.validation import ValidationGate
from conftest import registration
from core.errors import AuthFailure, NotFound, StoreError, ValidationFailure


class _AlwaysFree:
    def exists_by_email(self, email: str) -> bool:
        return False


class TestRegister:
    def test_register_succeeds_and_signs_in(self, identity, store):
        session: dict = {}
        context = identity.register(registration(), session)

        assert context.user_id > 0
        assert context.email == "a@x.com"
        assert session[SESSION_USER_ID] == context.user_id
        assert session[SESSION_USER_EMAIL] == "a@x.com"

        record = store.find_by_email("a@x.com")
        assert record.interests == ["tech"]
        assert record.profile_photo == "ref1"
        assert record.password_hash != "password1"

    def test_register_same_email_twice(self, identity, store):
        identity.register(registration(), {})
        assert store.count() == 1

        with pytest.raises(ValidationFailure) as exc_info:
            identity.register(registration(full_name="B"), {})
        assert exc_info.value.errors["email"] == "Email already exists."
        assert store.count() == 1

    def test_register_race_conflict_becomes_email_error(self, identity, store, credentials):
        """The gate saw the email as free but the insert lost the race."""
        identity.register(registration(), {})
        racing = IdentityService(store, credentials, ValidationGate(_AlwaysFree()))

        session: dict = {}
        with pytest.raises(ValidationFailure) as exc_info:
            racing.register(registration(), session)
        assert exc_info.value.errors == {"email": "Email already exists."}
        assert session == {}

    def test_register_store_failure_is_generic(self, identity, store, monkeypatch):
        def broken_insert(record):
            raise StoreError()

        monkeypatch.setattr(store, "insert", broken_insert)
        with pytest.raises(StoreError) as exc_info:
            identity.register(registration(), {})
        assert exc_info.value.message == "Registration failed. Please try again."

    def test_invalid_registration_writes_nothing(self, identity, store):
        with pytest.raises(ValidationFailure):
            identity.register(registration(password="short", confirm_password="short"), {})
        assert store.count() == 0


class TestLogin:
    @pytest.fixture(autouse=True)
    def _registered(self, identity):
        identity.register(registration(), {})

    def test_login_success_without_remember_me(self, identity):
        session: dict = {}
        result = identity.login("a@x.com", "password1", False, session)
        assert result.context.email == "a@x.com"
        assert result.cookie_action is CookieAction.clear
        assert result.token is None
        assert current_context(session) == result.context

    def test_login_with_remember_me_issues_token(self, identity, credentials):
        result = identity.login("A@X.COM", "password1", True, {})
        assert result.cookie_action is CookieAction.set
        assert result.token.user_id == result.context.user_id
        assert credentials.verify_token(result.token.user_id, result.token.token) is True

    def test_wrong_password_and_unknown_email_share_message(self, identity):
        with pytest.raises(AuthFailure) as wrong_pw:
            identity.login("a@x.com", "wrongpw", False, {})
        with pytest.raises(AuthFailure) as unknown:
            identity.login("nope@x.com", "whatever", False, {})

        assert wrong_pw.value.message == unknown.value.message
        assert wrong_pw.value.errors == {"password": INVALID_CREDENTIALS}
        assert unknown.value.errors == {"email": INVALID_CREDENTIALS}

    def test_failed_login_leaves_session_untouched(self, identity):
        session = {"other": "value"}
        with pytest.raises(AuthFailure):
            identity.login("a@x.com", "wrongpw", False, session)
        assert session == {"other": "value"}

    def test_missing_fields(self, identity):
        with pytest.raises(ValidationFailure) as exc_info:
            identity.login("", "", False, {})
        assert exc_info.value.message == "Please fill in all fields."


class TestRestore:
    def test_anonymous_without_cookies(self, identity):
        result = identity.restore({})
        assert result.context is None
        assert result.cookie_action is CookieAction.keep

    def test_existing_session_wins(self, identity):
        session = {SESSION_USER_ID: 5, SESSION_USER_EMAIL: "x@x.com"}
        result = identity.restore(session, "1", "garbage")
        assert result.context == SessionContext(user_id=5, email="x@x.com")
        assert result.restored_from_token is False

    def test_valid_token_reestablishes_session(self, identity):
        context = identity.register(registration(), {})
        token = identity.credentials.issue_token(context.user_id, "a@x.com")

        session: dict = {}
        result = identity.restore(session, str(context.user_id), token)
        assert result.restored_from_token is True
        assert result.context.user_id == context.user_id
        assert session[SESSION_USER_ID] == context.user_id

    @pytest.mark.parametrize("cookie_user_id", ["abc", "-1", "0", "9999"])
    def test_bad_user_id_clears_cookies(self, identity, cookie_user_id):
        identity.register(registration(), {})
        result = identity.restore({}, cookie_user_id, "deadbeef")
        assert result.context is None
        assert result.cookie_action is CookieAction.clear

    def test_token_invalid_after_email_change(self, identity, store):
        context = identity.register(registration(), {})
        token = identity.credentials.issue_token(context.user_id, "a@x.com")
        store.update(context.user_id, email="changed@x.com")

        session: dict = {}
        result = identity.restore(session, str(context.user_id), token)
        assert result.context is None
        assert result.cookie_action is CookieAction.clear
        assert session == {}


class TestCurrentRecordAndLogout:
    def test_current_record(self, identity):
        session: dict = {}
        context = identity.register(registration(), session)
        assert identity.current_record(context, session).email == "a@x.com"

    def test_stale_session_is_cleared(self, identity, store):
        session: dict = {}
        context = identity.register(registration(), session)
        store.delete_by_ids([context.user_id])

        with pytest.raises(NotFound) as exc_info:
            identity.current_record(context, session)
        assert exc_info.value.message == "Record not found."
        assert session == {}

    def test_logout(self, identity):
        session: dict = {}
        identity.register(registration(), session)
        assert identity.logout(session) is CookieAction.clear
        assert session == {}
        assert current_context(session) is None

    def test_logout_when_anonymous(self, identity):
        assert identity.logout({}) is CookieAction.clear
