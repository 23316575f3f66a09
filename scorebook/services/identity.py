"""
Identity Service Client
=======================
create-account, sign-in, sign-out and a push-style "signed-in user changed"
observer.

MemoryIdentityService mirrors Supabase Auth closely enough that the rest of
the app cannot tell the difference: passwords are checked per address and
access tokens are HS256 JWTs with the "authenticated" audience.
"""
import logging
import threading
import time
import uuid

import jwt

from scorebook.errors import AccountNotFoundError, IdentityError, InvalidCredentialError
from scorebook.services.documents import Subscription

logger = logging.getLogger(__name__)

SIGNED_IN = "SIGNED_IN"
SIGNED_OUT = "SIGNED_OUT"


class IdentityService:
    """Interface implemented by the memory and Supabase identity clients."""

    def __init__(self):
        self._observers = []
        self._observer_lock = threading.Lock()

    def create_account(self, email, password):
        raise NotImplementedError

    def sign_in(self, email, password):
        raise NotImplementedError

    def sign_out(self, user):
        raise NotImplementedError

    def on_auth_state_change(self, callback):
        """
        Register callback(event, user) for SIGNED_IN / SIGNED_OUT.
        Returns a Subscription; cancel() detaches the observer.
        """
        subscription = Subscription(on_cancel=self._detach)
        subscription.callback = callback
        with self._observer_lock:
            self._observers.append(subscription)
        return subscription

    def _detach(self, subscription):
        with self._observer_lock:
            if subscription in self._observers:
                self._observers.remove(subscription)

    def _emit(self, event, user):
        with self._observer_lock:
            observers = [o for o in self._observers if o.active]
        for observer in observers:
            try:
                observer.callback(event, user)
            except Exception as e:
                logger.error("Auth state observer failed on %s: %s", event, e)


def issue_token(uid, email, secret, ttl_seconds=3600):
    """Sign an access token shaped like a Supabase session JWT."""
    now = int(time.time())
    payload = {
        "sub": uid,
        "email": email,
        "aud": "authenticated",
        "role": "authenticated",
        "iat": now,
        "exp": now + ttl_seconds,
    }
    return jwt.encode(payload, secret, algorithm="HS256")


class MemoryIdentityService(IdentityService):
    """In-process accounts keyed by email."""

    def __init__(self, secret, ttl_seconds=3600):
        super().__init__()
        if not secret:
            raise IdentityError("JWT secret is required for the memory identity service")
        self.secret = secret
        self.ttl_seconds = ttl_seconds
        self._accounts = {}
        self._lock = threading.Lock()

    def create_account(self, email, password):
        email = (email or "").strip().lower()
        if not email or not password:
            raise IdentityError("Email and password are required", code="validation_failed")
        with self._lock:
            if email in self._accounts:
                raise IdentityError("User already registered", code="email_exists")
            uid = str(uuid.uuid4())
            self._accounts[email] = {"uid": uid, "password": password}
        user = self._user(uid, email)
        logger.info("Account created: %s", uid)
        self._emit(SIGNED_IN, user)
        return user

    def sign_in(self, email, password):
        email = (email or "").strip().lower()
        with self._lock:
            account = self._accounts.get(email)
        if account is None:
            raise AccountNotFoundError()
        if account["password"] != password:
            raise InvalidCredentialError()
        user = self._user(account["uid"], email)
        self._emit(SIGNED_IN, user)
        return user

    def sign_out(self, user):
        if user:
            self._emit(SIGNED_OUT, user)

    def _user(self, uid, email):
        return {
            "uid": uid,
            "email": email,
            "access_token": issue_token(uid, email, self.secret, self.ttl_seconds),
        }
