"""
Supabase Backend
================
Document store and identity service backed by a Supabase project.

Tables (see supabase_schema.sql):
- user_profiles  <- user_profiles/{id}
- grades         <- grades/{student_id}/data/{grade_id}, scoped by student_id

The sync Python client has no realtime channel, so live queries are polled on
a daemon thread and pushed to the callback whenever the result set changes.
"""
import logging
import threading
from datetime import date, datetime

from scorebook.errors import (
    AccountNotFoundError, DocumentStoreError, IdentityError, InvalidCredentialError,
)
from scorebook.services.documents import DocumentStore, Subscription, parse_collection
from scorebook.services.identity import SIGNED_IN, SIGNED_OUT, IdentityService

logger = logging.getLogger(__name__)


def _create_client(url, key):
    """Create a Supabase client (imported lazily to keep startup light)."""
    from supabase import create_client
    if not url or not key:
        raise DocumentStoreError(
            "Supabase credentials not configured. Check SUPABASE_URL and SUPABASE_SERVICE_KEY in .env"
        )
    return create_client(url, key)


def _to_row(data):
    row = {}
    for key, value in data.items():
        if key in ("id", "created_at"):
            continue
        if isinstance(value, (datetime, date)):
            value = value.isoformat()
        row[key] = value
    return row


def _from_row(row):
    doc = dict(row)
    doc.pop("student_id", None)
    return doc


class PollingSubscription(Subscription):
    """Re-runs a query every `interval` seconds and pushes changed results."""

    def __init__(self, fetch, callback, interval=2.0, on_error=None, name="scorebook-poll"):
        super().__init__()
        self._fetch = fetch
        self._callback = callback
        self._interval = interval
        self._on_error = on_error
        self._wake = threading.Event()
        self._last = None
        self._thread = threading.Thread(target=self._run, daemon=True, name=name)

    def start(self):
        self._thread.start()
        return self

    def cancel(self):
        super().cancel()
        self._wake.set()

    def refresh(self):
        """Poll now instead of waiting out the interval."""
        self._wake.set()

    def _run(self):
        while self.active:
            try:
                results = self._fetch()
            except Exception as e:
                logger.error("Live query poll failed: %s", e)
                if self.active and self._on_error:
                    self._on_error(e)
                self.cancel()
                break

            if self.active and results != self._last:
                self._last = results
                try:
                    self._callback(results)
                except Exception as e:
                    logger.error("Live query callback failed: %s", e)

            self._wake.wait(timeout=self._interval)
            self._wake.clear()


class SupabaseDocumentStore(DocumentStore):
    """Document operations mapped onto Supabase tables."""

    def __init__(self, url, key, poll_interval=2.0, client=None):
        self.url = url
        self.key = key
        self.poll_interval = poll_interval
        self._client = client

    def client(self):
        """Get or create the service-role client."""
        if self._client is None:
            self._client = _create_client(self.url, self.key)
        return self._client

    def _scoped(self, builder, owner):
        if owner is not None:
            builder = builder.eq("student_id", owner)
        return builder

    def get(self, collection, doc_id):
        table, owner = parse_collection(collection)
        try:
            builder = self.client().table(table).select("*").eq("id", doc_id)
            result = self._scoped(builder, owner).limit(1).execute()
        except DocumentStoreError:
            raise
        except Exception as e:
            raise DocumentStoreError(f"get {collection}/{doc_id} failed: {e}") from e
        return _from_row(result.data[0]) if result.data else None

    def query(self, collection, where=None, order_by=None, descending=False, limit=None):
        table, owner = parse_collection(collection)
        try:
            builder = self._scoped(self.client().table(table).select("*"), owner)
            for field, value in (where or []):
                builder = builder.eq(field, value)
            if order_by:
                builder = builder.order(order_by, desc=descending)
            if limit is not None:
                builder = builder.limit(limit)
            result = builder.execute()
        except DocumentStoreError:
            raise
        except Exception as e:
            raise DocumentStoreError(f"query {collection} failed: {e}") from e
        return [_from_row(r) for r in result.data]

    def add(self, collection, data):
        table, owner = parse_collection(collection)
        row = _to_row(data)
        if owner is not None:
            row["student_id"] = owner
        try:
            result = self.client().table(table).insert(row).execute()
        except DocumentStoreError:
            raise
        except Exception as e:
            raise DocumentStoreError(f"add to {collection} failed: {e}") from e
        if not result.data:
            raise DocumentStoreError(f"add to {collection} returned no row")
        return result.data[0].get("id")

    def set(self, collection, doc_id, data):
        table, owner = parse_collection(collection)
        row = _to_row(data)
        row["id"] = doc_id
        if owner is not None:
            row["student_id"] = owner
        try:
            self.client().table(table).upsert(row).execute()
        except DocumentStoreError:
            raise
        except Exception as e:
            raise DocumentStoreError(f"set {collection}/{doc_id} failed: {e}") from e
        return doc_id

    def delete(self, collection, doc_id):
        table, owner = parse_collection(collection)
        try:
            builder = self.client().table(table).delete().eq("id", doc_id)
            self._scoped(builder, owner).execute()
        except DocumentStoreError:
            raise
        except Exception as e:
            raise DocumentStoreError(f"delete {collection}/{doc_id} failed: {e}") from e

    def subscribe(self, collection, callback, where=None, order_by=None,
                  descending=False, on_error=None):
        parse_collection(collection)

        def fetch():
            return self.query(collection, where=where, order_by=order_by, descending=descending)

        return PollingSubscription(
            fetch, callback,
            interval=self.poll_interval,
            on_error=on_error,
            name=f"poll-{collection}",
        ).start()


def _map_auth_error(error):
    """Translate a Supabase Auth exception into our identity errors."""
    code = getattr(error, "code", None)
    message = getattr(error, "message", None) or str(error)
    if code == "invalid_credentials" or "invalid login credentials" in message.lower():
        return InvalidCredentialError(message)
    if code == "user_not_found":
        return AccountNotFoundError(message)
    return IdentityError(message, code=code)


class SupabaseIdentityService(IdentityService):
    """
    Supabase Auth.

    Each sign-in uses a throwaway client so that one user's session never
    leaks into another request. Accounts are created through the admin API
    with the address pre-confirmed, since internal addresses cannot receive mail.
    """

    def __init__(self, url, service_key, anon_key=None):
        super().__init__()
        self.url = url
        self.service_key = service_key
        self.anon_key = anon_key or service_key
        self._admin = None

    def _admin_client(self):
        if self._admin is None:
            self._admin = _create_client(self.url, self.service_key)
        return self._admin

    def create_account(self, email, password):
        try:
            self._admin_client().auth.admin.create_user({
                "email": email,
                "password": password,
                "email_confirm": True,
            })
        except Exception as e:
            raise _map_auth_error(e) from e
        return self.sign_in(email, password)

    def sign_in(self, email, password):
        try:
            client = _create_client(self.url, self.anon_key)
            res = client.auth.sign_in_with_password({"email": email, "password": password})
        except Exception as e:
            raise _map_auth_error(e) from e
        if res.user is None or res.session is None:
            raise IdentityError("Sign-in returned no session")
        user = {
            "uid": res.user.id,
            "email": res.user.email,
            "access_token": res.session.access_token,
        }
        self._emit(SIGNED_IN, user)
        return user

    def sign_out(self, user):
        if not user:
            return
        token = user.get("access_token")
        if token:
            try:
                self._admin_client().auth.admin.sign_out(token)
            except Exception as e:
                logger.warning("Supabase sign-out failed for %s: %s", user.get("uid"), e)
        self._emit(SIGNED_OUT, user)
