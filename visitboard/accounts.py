import sqlite3
import logging
from typing import Optional, Sequence

from passlib.context import CryptContext
from passlib.exc import PasswordValueError

from .database import Database
from .errors import DuplicateUsername, InvalidCredentials, InvalidPassword
from .models import User

logger = logging.getLogger(__name__)


def make_pwd_context(schemes: Sequence[str] = ("bcrypt_sha256",), bcrypt_rounds: Optional[int] = None) -> CryptContext:
    """CryptContext for the configured schemes.

    ``bcrypt_sha256`` is the default: it digests the secret before bcrypt,
    so passwords longer than 72 bytes or containing NUL are stored whole.
    """
    settings = {}
    if bcrypt_rounds is not None:
        for scheme in schemes:
            if scheme in ("bcrypt", "bcrypt_sha256"):
                settings[f"{scheme}__rounds"] = bcrypt_rounds
    return CryptContext(schemes=list(schemes), deprecated="auto", **settings)


def _truncates(handler, password: str) -> bool:
    # Plain bcrypt silently ignores everything past its first 72 bytes
    return handler.name == "bcrypt" and len(password.encode("utf-8")) > handler.truncate_size


class AccountStore:
    """User records: credentials and the per-user visit counter.

    Passwords are kept as passlib hashes in the ``password`` column and
    checked with ``CryptContext.verify``; the hash never leaves this class.
    """

    def __init__(self, db: Database, pwd_context: Optional[CryptContext] = None):
        self.db = db
        self.pwd_context = pwd_context or make_pwd_context()

    def _hash(self, password: str) -> str:
        if _truncates(self.pwd_context.handler(), password):
            raise InvalidPassword("Password is longer than the hash scheme accepts")
        try:
            return self.pwd_context.hash(password)
        except PasswordValueError as e:
            raise InvalidPassword(str(e)) from e

    def register(self, username: str, password: str) -> None:
        hashed_password = self._hash(password)
        with self.db.get_db() as conn:
            try:
                conn.execute("INSERT INTO users (username, password, visited_count) VALUES (?, ?, 0)",
                             (username, hashed_password))
            except sqlite3.IntegrityError:
                logger.info(f"Registration rejected, username taken: {username}")
                raise DuplicateUsername(username)
        logger.info(f"Registered user {username}")

    def authenticate(self, username: str, password: str) -> User:
        with self.db.get_db() as conn:
            row = conn.execute("SELECT username, password, visited_count FROM users WHERE username = ?",
                               (username,)).fetchone()
        if row is None or not row["password"]:
            # Burn the same hashing time as a real check
            self.pwd_context.dummy_verify()
            raise InvalidCredentials()
        if not self._verify(password, row["password"]):
            raise InvalidCredentials()
        return User(username=row["username"], visited_count=row["visited_count"])

    def _verify(self, password: str, hashed_password: str) -> bool:
        try:
            handler = self.pwd_context.identify(hashed_password, resolve=True, required=True)
            if _truncates(handler, password):
                self.pwd_context.dummy_verify()
                return False
            return self.pwd_context.verify(password, hashed_password)
        except PasswordValueError:
            return False
        except ValueError:
            # Not a hash this context recognises (e.g. a legacy plaintext row)
            logger.warning("Stored password is not a recognised hash; rejecting login")
            self.pwd_context.dummy_verify()
            return False

    def record_visit(self, username: str) -> int:
        """Increment the visit counter and return the new value.

        The update and the read-back run in one IMMEDIATE transaction, so
        overlapping logins for the same user each see their own increment.
        """
        with self.db.transaction() as conn:
            cursor = conn.execute("UPDATE users SET visited_count = visited_count + 1 WHERE username = ?",
                                  (username,))
            if cursor.rowcount == 0:
                raise InvalidCredentials()
            row = conn.execute("SELECT visited_count FROM users WHERE username = ?", (username,)).fetchone()
        return row["visited_count"]

    def get_user(self, username: str) -> Optional[User]:
        with self.db.get_db() as conn:
            row = conn.execute("SELECT username, visited_count FROM users WHERE username = ?",
                               (username,)).fetchone()
        return User(username=row["username"], visited_count=row["visited_count"]) if row else None

    def seed_default_account(self, username: str, password: str) -> bool:
        """Insert the default account unless it already exists; True if inserted"""
        hashed_password = self._hash(password)
        with self.db.get_db() as conn:
            cursor = conn.execute("INSERT OR IGNORE INTO users (username, password) VALUES (?, ?)",
                                  (username, hashed_password))
            inserted = cursor.rowcount == 1
        if inserted:
            logger.info(f"Seeded default account {username}")
        return inserted
