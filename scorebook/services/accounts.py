"""
Login and registration for the three auth schemes.

- federated: identity-service account under a synthesized internal address,
  profile keyed by the generated uid; login tries every profile that shares
  the display name.
- passcode: profile keyed by a user-chosen id holding the transformed passcode.
- teacher: one fixed name/passcode checked locally, then a sign-in to the
  pre-provisioned teacher account.

Each successful flow returns a LoginResult; the caller writes the session.
"""
import logging
import random
import string
import time
from datetime import date

from scorebook.config import (
    GENDERS, MIN_PASSCODE_LENGTH, MIN_PASSWORD_LENGTH, TEACHER_USER_ID, config,
)
from scorebook.errors import (
    AccountNotFoundError, BackendError, CredentialError, DocumentStoreError,
    IdentityError, InvalidCredentialError, ValidationError,
)
from scorebook.services.documents import PROFILES_COLLECTION
from scorebook.session import (
    SCHEME_FEDERATED, SCHEME_PASSCODE, SCHEME_TEACHER, hash_passcode,
)

logger = logging.getLogger(__name__)

INTERNAL_EMAIL_DOMAIN = "scoreapp.local"


class LoginResult:
    """Who signed in, with which scheme, and the proof to keep in the session."""

    def __init__(self, principal_id, credential, scheme, user=None):
        self.principal_id = principal_id
        self.credential = credential
        self.scheme = scheme
        self.user = user


# ---------------------------------------------------------------------------
# Birth date form helpers
# ---------------------------------------------------------------------------

def birth_years(current_year=None):
    """Current year back 100 years, newest first."""
    current_year = current_year or date.today().year
    return list(range(current_year, current_year - 101, -1))


def birth_months():
    return [f"{m:02d}" for m in range(1, 13)]


def days_in_month(year: int, month: int) -> int:
    if month == 2:
        return 29 if (year % 4 == 0 and (year % 100 != 0 or year % 400 == 0)) else 28
    if month in (4, 6, 9, 11):
        return 30
    return 31


def birth_days(year=None, month=None):
    """Day options for the chosen month; January 2000 until both are picked."""
    y, m = (int(year), int(month)) if year and month else (2000, 1)
    return [f"{d:02d}" for d in range(1, days_in_month(y, m) + 1)]


def format_birth_date(year, month, day) -> str:
    """YYYY-MM-DD as stored on the profile. Raises ValueError for impossible dates."""
    year, month, day = int(year), int(month), int(day)
    if year < 1 or not 1 <= month <= 12 or not 1 <= day <= days_in_month(year, month):
        raise ValueError(f"Invalid date: {year}-{month}-{day}")
    return f"{year:04d}-{month:02d}-{day:02d}"


def generate_internal_email():
    """Unique address for an identity-service account nobody types in."""
    suffix = ''.join(random.choices(string.ascii_lowercase + string.digits, k=6))
    return f"u{int(time.time() * 1000)}{suffix}@{INTERNAL_EMAIL_DOMAIN}"


# ---------------------------------------------------------------------------
# Federated-credential scheme
# ---------------------------------------------------------------------------

def register_student(store, identity, name, password, birth_year, birth_month, birth_day, gender):
    """Create an identity account plus its profile document."""
    if not name or not password or not birth_year or not birth_month or not birth_day or not gender:
        raise ValidationError("Please fill in all fields.")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")
    if gender not in GENDERS:
        raise ValidationError("Please choose a gender from the list.")
    try:
        birth_date = format_birth_date(birth_year, birth_month, birth_day)
    except (TypeError, ValueError):
        raise ValidationError("Please choose a valid birth date.")

    internal_email = generate_internal_email()
    try:
        user = identity.create_account(internal_email, password)
        store.set(PROFILES_COLLECTION, user["uid"], {
            "name": name,
            "email": internal_email,
            "birth_date": birth_date,
            "gender": gender,
        })
    except (IdentityError, DocumentStoreError) as e:
        logger.error("Registration failed for %s: %s", internal_email, e)
        raise BackendError(f"Registration failed: {e}")

    logger.info("Student registered: %s", user["uid"])
    return LoginResult(user["uid"], user["access_token"], SCHEME_FEDERATED, user)


def login_student(store, identity, name, password, birth_date=None, gender=None):
    """
    Resolve a display name to candidate profiles and try each in order.

    A rejected password moves on to the next candidate; any other failure
    stops the attempt. The first candidate that signs in wins.
    """
    if not name or not password:
        raise ValidationError("Please fill in all fields.")

    where = [("name", name)]
    if birth_date:
        where.append(("birth_date", birth_date))
    if gender:
        where.append(("gender", gender))

    try:
        candidates = store.query(PROFILES_COLLECTION, where=where)
    except DocumentStoreError as e:
        logger.error("Profile lookup failed: %s", e)
        raise BackendError("Login failed.")

    if not candidates:
        raise CredentialError("No account matches the details entered.")

    for profile in candidates:
        internal_email = profile.get("email")
        if not internal_email:
            continue
        try:
            user = identity.sign_in(internal_email, password)
        except InvalidCredentialError:
            continue
        except IdentityError as e:
            logger.error("Identity service error for %s: %s", profile.get("id"), e)
            raise BackendError("Login failed.")
        logger.info("Student signed in: %s", user["uid"])
        return LoginResult(user["uid"], user["access_token"], SCHEME_FEDERATED, user)

    raise CredentialError("Incorrect password.")


# ---------------------------------------------------------------------------
# Passcode scheme
# ---------------------------------------------------------------------------

def register_passcode(store, user_id, name, passcode):
    """Write a profile keyed by the chosen id with the transformed passcode."""
    user_id = (user_id or "").strip()
    if not user_id or not name or not passcode:
        raise ValidationError("Please fill in all fields.")
    if "/" in user_id:
        raise ValidationError("User ID cannot contain '/'.")
    if len(passcode) < MIN_PASSCODE_LENGTH:
        raise ValidationError(f"Passcode must be at least {MIN_PASSCODE_LENGTH} characters.")
    if user_id == TEACHER_USER_ID:
        raise ValidationError("That user ID is already taken.")

    try:
        if store.get(PROFILES_COLLECTION, user_id) is not None:
            raise ValidationError("That user ID is already taken.")
        store.set(PROFILES_COLLECTION, user_id, {
            "name": name,
            "passcode_hash": hash_passcode(passcode),
        })
    except DocumentStoreError as e:
        logger.error("Passcode registration failed for %s: %s", user_id, e)
        raise BackendError("Registration failed.")

    logger.info("Passcode student registered: %s", user_id)
    return LoginResult(user_id, passcode, SCHEME_PASSCODE)


def login_passcode(store, user_id, passcode):
    """Compare the stored passcode hash with the entered one."""
    user_id = (user_id or "").strip()
    if not user_id or not passcode:
        raise ValidationError("Please fill in all fields.")

    try:
        profile = store.get(PROFILES_COLLECTION, user_id)
    except DocumentStoreError as e:
        logger.error("Profile read failed for %s: %s", user_id, e)
        raise BackendError("Login failed.")

    if profile is None or profile.get("passcode_hash") != hash_passcode(passcode):
        raise CredentialError("Incorrect user ID or passcode.")

    logger.info("Passcode student signed in: %s", user_id)
    return LoginResult(user_id, passcode, SCHEME_PASSCODE)


# ---------------------------------------------------------------------------
# Teacher
# ---------------------------------------------------------------------------

def login_teacher(identity, username, password):
    """Check the fixed teacher credentials, then sign in to the teacher account."""
    if username != config.teacher_user_name or password != config.teacher_password_code:
        raise CredentialError("Incorrect user name or password.")

    try:
        user = identity.sign_in(config.teacher_email, config.teacher_password_code)
    except AccountNotFoundError:
        raise CredentialError("The teacher account has not been set up yet.")
    except InvalidCredentialError:
        raise CredentialError("Incorrect password.")
    except IdentityError as e:
        logger.error("Teacher sign-in failed: %s", e)
        raise BackendError("Unexpected error during authentication.")

    logger.info("Teacher signed in")
    return LoginResult(user["uid"], user["access_token"], SCHEME_TEACHER, user)
