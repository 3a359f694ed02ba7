"""
Local identity provider.

Email/password and federated identities kept in the same SQLite file as
the account store, with opaque bearer tokens for signed-in sessions.
"""

import hashlib
import hmac
import secrets
import sqlite3
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Protocol

from killer_assistant.errors import AuthenticationError, IdentityError

from .db import DEFAULT_DB_PATH, get_connection

_HASH_ITERATIONS = 200_000


@dataclass(frozen=True)
class Identity:
    """A signed-in user as seen by the identity provider."""
    uid: str
    email: str
    display_name: str
    token: str
    is_new: bool = False


@dataclass(frozen=True)
class FederatedAssertion:
    """Verified identity returned by an external provider's sign-in flow."""
    provider: str
    subject: str
    email: str = ""
    display_name: str = "User"


class IdentityProvider(Protocol):
    """Sign-in backend used by the session gate and the bearer-token check."""

    def sign_up(self, email: str, password: str, display_name: str = "User") -> Identity: ...

    def sign_in(self, email: str, password: str) -> Identity: ...

    def sign_in_federated(self, assertion: FederatedAssertion) -> Identity: ...

    def sign_out(self, token: str) -> None: ...

    def verify_token(self, token: str) -> str: ...


def _hash_password(password: str, salt: Optional[bytes] = None) -> str:
    salt = salt or secrets.token_bytes(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, _HASH_ITERATIONS)
    return f"{salt.hex()}${digest.hex()}"


def _check_password(password: str, stored: str) -> bool:
    salt_hex, _, digest_hex = stored.partition("$")
    expected = _hash_password(password, bytes.fromhex(salt_hex)).partition("$")[2]
    return hmac.compare_digest(expected, digest_hex)


class LocalIdentityProvider:
    """Identity provider backed by the identities and sessions tables."""

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        self.db_path = db_path

    def sign_up(self, email: str, password: str, display_name: str = "User") -> Identity:
        """Register an email/password identity and open a session for it.

        Raises:
            IdentityError: If input is missing or the email is already registered
        """
        if not email or not password:
            raise IdentityError("email and password are required")
        if len(password) < 6:
            raise IdentityError("password must be at least 6 characters")

        uid = uuid.uuid4().hex
        conn = get_connection(self.db_path)
        try:
            conn.execute(
                "INSERT INTO identities (uid, email, password_hash, provider, display_name) "
                "VALUES (?, ?, ?, 'password', ?)",
                (uid, email.lower(), _hash_password(password), display_name or "User"),
            )
            conn.commit()
        except sqlite3.IntegrityError:
            raise IdentityError(f"email already registered: {email}")
        finally:
            conn.close()
        return self._open_session(uid, email.lower(), display_name or "User", is_new=True)

    def sign_in(self, email: str, password: str) -> Identity:
        """Check email/password credentials and open a session.

        Raises:
            IdentityError: If the credentials do not match
        """
        conn = get_connection(self.db_path)
        try:
            row = conn.execute(
                "SELECT uid, email, password_hash, display_name FROM identities "
                "WHERE email = ? AND provider = 'password'",
                ((email or "").lower(),),
            ).fetchone()
        finally:
            conn.close()
        if row is None or not _check_password(password or "", row[2]):
            raise IdentityError("invalid email or password")
        return self._open_session(row[0], row[1], row[3])

    def sign_in_federated(self, assertion: FederatedAssertion) -> Identity:
        """Sign in with an external provider, creating the identity on first use."""
        conn = get_connection(self.db_path)
        try:
            row = conn.execute(
                "SELECT uid, email, display_name FROM identities WHERE provider = ? AND subject = ?",
                (assertion.provider, assertion.subject),
            ).fetchone()
            if row is not None:
                return self._open_session(row[0], row[1], row[2])

            uid = uuid.uuid4().hex
            conn.execute(
                "INSERT INTO identities (uid, email, provider, subject, display_name) "
                "VALUES (?, ?, ?, ?, ?)",
                (uid, assertion.email.lower() or None, assertion.provider,
                 assertion.subject, assertion.display_name or "User"),
            )
            conn.commit()
        except sqlite3.IntegrityError:
            raise IdentityError(f"email already registered: {assertion.email}")
        finally:
            conn.close()
        return self._open_session(uid, assertion.email.lower(), assertion.display_name or "User", is_new=True)

    def sign_out(self, token: str) -> None:
        """Close a session. Unknown tokens are ignored."""
        conn = get_connection(self.db_path)
        try:
            conn.execute("DELETE FROM sessions WHERE token = ?", (token,))
            conn.commit()
        finally:
            conn.close()

    def verify_token(self, token: str) -> str:
        """Resolve a bearer token to its uid.

        Raises:
            AuthenticationError: If the token is unknown
        """
        conn = get_connection(self.db_path)
        try:
            row = conn.execute("SELECT uid FROM sessions WHERE token = ?", (token or "",)).fetchone()
        finally:
            conn.close()
        if row is None:
            raise AuthenticationError("Invalid token")
        return row[0]

    def _open_session(self, uid: str, email: str, display_name: str, is_new: bool = False) -> Identity:
        token = secrets.token_urlsafe(32)
        conn = get_connection(self.db_path)
        try:
            conn.execute(
                "INSERT INTO sessions (token, uid, created_at) VALUES (?, ?, ?)",
                (token, uid, datetime.now().isoformat()),
            )
            conn.commit()
        finally:
            conn.close()
        return Identity(uid=uid, email=email, display_name=display_name, token=token, is_new=is_new)
