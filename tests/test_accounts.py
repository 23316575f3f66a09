"""
Test: Registration and login for the federated, passcode and teacher schemes.
"""
import re

import pytest

from scorebook.config import TEACHER_USER_ID, config
from scorebook.errors import (
    AccountNotFoundError, BackendError, CredentialError, IdentityError,
    InvalidCredentialError, ValidationError,
)
from scorebook.services.accounts import (
    birth_days, birth_months, birth_years, days_in_month, format_birth_date,
    generate_internal_email, login_passcode, login_student, login_teacher,
    register_passcode, register_student,
)
from scorebook.services.documents import PROFILES_COLLECTION
from scorebook.session import SCHEME_FEDERATED, SCHEME_PASSCODE, SCHEME_TEACHER


class RecordingIdentity:
    """Wraps an identity service and records every sign-in attempt."""

    def __init__(self, inner, fail_with=None):
        self.inner = inner
        self.fail_with = fail_with or {}
        self.attempts = []

    def create_account(self, email, password):
        return self.inner.create_account(email, password)

    def sign_in(self, email, password):
        self.attempts.append(email)
        if email in self.fail_with:
            raise self.fail_with[email]
        return self.inner.sign_in(email, password)


def _register(store, identity, name="Taro", password="secret1", gender="male"):
    return register_student(store, identity, name, password, 2008, 5, 17, gender)


class TestBirthDateHelpers:
    def test_years_span_101(self):
        years = birth_years(2024)
        assert years[0] == 2024
        assert years[-1] == 1924
        assert len(years) == 101

    def test_months_zero_padded(self):
        months = birth_months()
        assert months[0] == "01"
        assert months[-1] == "12"

    def test_leap_february(self):
        assert days_in_month(2024, 2) == 29
        assert days_in_month(1900, 2) == 28
        assert days_in_month(2000, 2) == 29
        assert days_in_month(2023, 4) == 30

    def test_days_default_to_january(self):
        assert len(birth_days()) == 31
        assert birth_days(2023, 2)[-1] == "28"

    def test_days_bad_input(self):
        with pytest.raises(ValueError):
            birth_days("abc", "02")

    def test_format(self):
        assert format_birth_date(2008, 5, 7) == "2008-05-07"
        assert format_birth_date("2008", "05", "07") == "2008-05-07"

    @pytest.mark.parametrize("year, month, day", [(2005, 2, 29), (2005, 2, 31), (2005, 13, 1), (2005, 0, 1), (2005, 4, 31)])
    def test_format_rejects_impossible_dates(self, year, month, day):
        with pytest.raises(ValueError):
            format_birth_date(year, month, day)

    def test_format_accepts_leap_day(self):
        assert format_birth_date(2004, 2, 29) == "2004-02-29"


class TestRegisterStudent:
    def test_creates_account_and_profile(self, store, identity):
        result = _register(store, identity)
        assert result.scheme == SCHEME_FEDERATED
        profile = store.get(PROFILES_COLLECTION, result.principal_id)
        assert profile["name"] == "Taro"
        assert profile["birth_date"] == "2008-05-17"
        assert profile["gender"] == "male"
        assert re.match(r"^u\d+[a-z0-9]{6}@scoreapp\.local$", profile["email"])

    def test_internal_emails_unique(self):
        assert generate_internal_email() != generate_internal_email()

    def test_short_password(self, store, identity):
        with pytest.raises(ValidationError, match="at least 6"):
            _register(store, identity, password="abc")
        assert store.query(PROFILES_COLLECTION) == []

    def test_missing_field(self, store, identity):
        with pytest.raises(ValidationError):
            register_student(store, identity, "Taro", "secret1", 2008, 5, None, "male")

    def test_impossible_birth_date(self, store, identity):
        with pytest.raises(ValidationError, match="valid birth date"):
            register_student(store, identity, "Taro", "secret1", 2005, 2, 31, "male")
        assert store.query(PROFILES_COLLECTION) == []

    def test_unknown_gender(self, store, identity):
        with pytest.raises(ValidationError):
            _register(store, identity, gender="robot")

    def test_identity_failure_is_backend_error(self, store, identity):
        class Broken:
            def create_account(self, email, password):
                raise IdentityError("service down")

        with pytest.raises(BackendError, match="Registration failed"):
            _register(store, Broken())
        assert store.query(PROFILES_COLLECTION) == []


class TestLoginStudent:
    def test_single_candidate(self, store, identity):
        registered = _register(store, identity)
        result = login_student(store, identity, "Taro", "secret1")
        assert result.principal_id == registered.principal_id
        assert result.credential

    def test_unknown_name(self, store, identity):
        with pytest.raises(CredentialError, match="No account"):
            login_student(store, identity, "Nobody", "secret1")

    def test_wrong_password(self, store, identity):
        _register(store, identity)
        with pytest.raises(CredentialError, match="Incorrect password"):
            login_student(store, identity, "Taro", "wrongpass")

    def test_shared_name_tries_next_candidate(self, store, identity):
        _register(store, identity, password="first-pw")
        second = _register(store, identity, password="second-pw")
        recording = RecordingIdentity(identity)

        result = login_student(store, recording, "Taro", "second-pw")

        assert result.principal_id == second.principal_id
        assert len(recording.attempts) == 2

    def test_first_success_stops(self, store, identity):
        first = _register(store, identity, password="same-pw")
        _register(store, identity, password="same-pw")
        recording = RecordingIdentity(identity)

        result = login_student(store, recording, "Taro", "same-pw")

        assert result.principal_id == first.principal_id
        assert len(recording.attempts) == 1

    def test_hard_error_aborts(self, store, identity):
        first = _register(store, identity, password="first-pw")
        _register(store, identity, password="second-pw")
        first_email = store.get(PROFILES_COLLECTION, first.principal_id)["email"]
        recording = RecordingIdentity(identity, fail_with={
            first_email: IdentityError("rate limited", code="over_request_rate_limit"),
        })

        with pytest.raises(BackendError):
            login_student(store, recording, "Taro", "second-pw")
        assert recording.attempts == [first_email]

    def test_birth_date_and_gender_narrow(self, store, identity):
        _register(store, identity, password="first-pw", gender="male")
        female = _register(store, identity, password="second-pw", gender="female")
        recording = RecordingIdentity(identity)

        result = login_student(store, recording, "Taro", "second-pw",
                               birth_date="2008-05-17", gender="female")

        assert result.principal_id == female.principal_id
        assert len(recording.attempts) == 1

    def test_missing_fields(self, store, identity):
        with pytest.raises(ValidationError):
            login_student(store, identity, "Taro", "")


class TestPasscode:
    def test_register_then_login(self, store):
        result = register_passcode(store, "alice", "Alice", "abcd")
        assert result.scheme == SCHEME_PASSCODE
        assert store.get(PROFILES_COLLECTION, "alice")["passcode_hash"] == "abcd"

        login = login_passcode(store, "alice", "abcd")
        assert login.principal_id == "alice"
        assert login.credential == "abcd"

    def test_short_passcode(self, store):
        with pytest.raises(ValidationError, match="at least 4"):
            register_passcode(store, "alice", "Alice", "abc")

    def test_taken_id(self, store):
        register_passcode(store, "alice", "Alice", "abcd")
        with pytest.raises(ValidationError, match="already taken"):
            register_passcode(store, "alice", "Another Alice", "wxyz")
        assert store.get(PROFILES_COLLECTION, "alice")["name"] == "Alice"

    def test_reserved_teacher_id(self, store):
        with pytest.raises(ValidationError, match="already taken"):
            register_passcode(store, TEACHER_USER_ID, "Sneaky", "abcd")

    def test_slash_in_id(self, store):
        with pytest.raises(ValidationError):
            register_passcode(store, "a/b", "Alice", "abcd")

    def test_wrong_passcode(self, store):
        register_passcode(store, "alice", "Alice", "abcd")
        with pytest.raises(CredentialError, match="Incorrect user ID or passcode"):
            login_passcode(store, "alice", "dcba")

    def test_unknown_id(self, store):
        with pytest.raises(CredentialError):
            login_passcode(store, "ghost", "abcd")


class TestTeacherLogin:
    def test_success(self, teacher_identity):
        result = login_teacher(teacher_identity, config.teacher_user_name, config.teacher_password_code)
        assert result.scheme == SCHEME_TEACHER
        assert result.user["email"] == config.teacher_email

    def test_wrong_fixed_credentials(self, teacher_identity):
        with pytest.raises(CredentialError, match="user name or password"):
            login_teacher(teacher_identity, config.teacher_user_name, "000000")
        with pytest.raises(CredentialError):
            login_teacher(teacher_identity, "principal", config.teacher_password_code)

    def test_account_not_provisioned(self, identity):
        with pytest.raises(CredentialError, match="not been set up"):
            login_teacher(identity, config.teacher_user_name, config.teacher_password_code)

    def test_identity_rejects_password(self):
        class Rejecting:
            def sign_in(self, email, password):
                raise InvalidCredentialError()

        with pytest.raises(CredentialError, match="Incorrect password"):
            login_teacher(Rejecting(), config.teacher_user_name, config.teacher_password_code)

    def test_unexpected_error(self):
        class Broken:
            def sign_in(self, email, password):
                raise IdentityError("network")

        with pytest.raises(BackendError, match="Unexpected error"):
            login_teacher(Broken(), config.teacher_user_name, config.teacher_password_code)

    def test_account_not_found_is_identity_error(self):
        assert issubclass(AccountNotFoundError, IdentityError)
