"""
Session store for Scorebook.

A Session names the signed-in principal and carries the proof that was
presented at login. It lives in Flask's signed session cookie, so a reload
keeps the user logged in. Protected requests read it once; passcode sessions
are not re-checked against the backend on each read.
"""
import uuid

from flask import session as cookie_session

SCHEME_FEDERATED = "federated"
SCHEME_PASSCODE = "passcode"
SCHEME_TEACHER = "teacher"
SCHEMES = (SCHEME_FEDERATED, SCHEME_PASSCODE, SCHEME_TEACHER)

_ID_KEY = "custom_auth_id"
_CODE_KEY = "custom_auth_code"
_SCHEME_KEY = "custom_auth_scheme"
_SID_KEY = "custom_auth_sid"


def hash_passcode(passcode: str) -> str:
    """
    Transform a passcode before storing or comparing it.

    WARNING: this is the identity transform. Passcodes are stored as entered;
    backend access rules compare against the same value.
    """
    return passcode


class Session:
    """The signed-in principal for one browser."""

    def __init__(self, principal_id, credential_proof, scheme, sid=None):
        self.principal_id = principal_id
        self.credential_proof = credential_proof
        self.scheme = scheme
        self.sid = sid or uuid.uuid4().hex

    @property
    def is_teacher(self):
        return self.scheme == SCHEME_TEACHER

    @property
    def is_student(self):
        return self.scheme in (SCHEME_FEDERATED, SCHEME_PASSCODE)

    @property
    def uses_token(self):
        return self.scheme in (SCHEME_FEDERATED, SCHEME_TEACHER)

    def to_dict(self):
        return {
            "principal_id": self.principal_id,
            "scheme": self.scheme,
        }

    def __repr__(self):
        return f"Session({self.principal_id!r}, scheme={self.scheme!r})"


class SessionStore:
    """read / write / clear over the cookie-backed session."""

    def __init__(self, storage=None):
        self._storage = storage

    @property
    def storage(self):
        return self._storage if self._storage is not None else cookie_session

    def read(self):
        """Return the current Session, or None when nobody is signed in."""
        storage = self.storage
        principal_id = storage.get(_ID_KEY)
        proof = storage.get(_CODE_KEY)
        scheme = storage.get(_SCHEME_KEY)
        if not principal_id or not proof or scheme not in SCHEMES:
            return None
        return Session(principal_id, proof, scheme, sid=storage.get(_SID_KEY))

    def write(self, principal_id, credential, scheme):
        """Establish a session. Passcodes are stored transformed."""
        if scheme not in SCHEMES:
            raise ValueError(f"Unknown auth scheme: {scheme}")
        proof = hash_passcode(credential) if scheme == SCHEME_PASSCODE else credential
        new_session = Session(principal_id, proof, scheme)
        storage = self.storage
        storage[_ID_KEY] = principal_id
        storage[_CODE_KEY] = proof
        storage[_SCHEME_KEY] = scheme
        storage[_SID_KEY] = new_session.sid
        return new_session

    def clear(self):
        storage = self.storage
        for key in (_ID_KEY, _CODE_KEY, _SCHEME_KEY, _SID_KEY):
            storage.pop(key, None)


session_store = SessionStore()
