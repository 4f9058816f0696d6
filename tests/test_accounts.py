import unittest
import sys
import os
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import patch

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from visitboard.accounts import AccountStore, make_pwd_context
from visitboard.errors import DuplicateUsername, InvalidCredentials, InvalidPassword
from tests.helpers import StoreTestMixin, TEST_ROUNDS


class TestAccountStore(StoreTestMixin, unittest.TestCase):
    def test_register_then_authenticate(self):
        self.accounts.register("alice", "s3cret")
        user = self.accounts.authenticate("alice", "s3cret")

        self.assertEqual(user.username, "alice")
        self.assertEqual(user.visited_count, 0)

    def test_register_duplicate_username(self):
        """Second registration fails and leaves exactly one row."""
        self.accounts.register("alice", "first")

        with self.assertRaises(DuplicateUsername) as ctx:
            self.accounts.register("alice", "second")

        self.assertEqual(ctx.exception.username, "alice")
        self.assertEqual(self.count_users("alice"), 1)
        # Original password still works
        self.accounts.authenticate("alice", "first")

    def test_password_is_not_stored_in_clear(self):
        self.accounts.register("alice", "s3cret")
        with self.db.get_db() as conn:
            stored = conn.execute("SELECT password FROM users WHERE username = 'alice'").fetchone()[0]

        self.assertNotEqual(stored, "s3cret")
        self.assertTrue(stored.startswith("$bcrypt-sha256$"))

    def test_seeded_account_authenticates(self):
        self.accounts.seed_default_account("testuser", "password123")
        user = self.accounts.authenticate("testuser", "password123")
        self.assertEqual(user.username, "testuser")

    def test_wrong_password_and_unknown_user_look_the_same(self):
        self.accounts.seed_default_account("testuser", "password123")

        with self.assertRaises(InvalidCredentials) as wrong_password:
            self.accounts.authenticate("testuser", "wrong")
        with self.assertRaises(InvalidCredentials) as unknown_user:
            self.accounts.authenticate("nouser", "x")

        self.assertIs(type(wrong_password.exception), type(unknown_user.exception))
        self.assertEqual(str(wrong_password.exception), str(unknown_user.exception))
        self.assertNotIn("testuser", str(wrong_password.exception))

    def test_plaintext_row_is_rejected(self):
        with self.db.get_db() as conn:
            conn.execute("INSERT INTO users (username, password) VALUES ('legacy', 'password123')")

        with self.assertRaises(InvalidCredentials):
            self.accounts.authenticate("legacy", "password123")

    def test_record_visit_returns_new_count(self):
        self.accounts.register("alice", "s3cret")

        self.assertEqual(self.accounts.record_visit("alice"), 1)
        self.assertEqual(self.accounts.record_visit("alice"), 2)
        self.assertEqual(self.accounts.authenticate("alice", "s3cret").visited_count, 2)

    def test_record_visit_unknown_user(self):
        with self.assertRaises(InvalidCredentials):
            self.accounts.record_visit("ghost")

    def test_concurrent_record_visit_loses_no_updates(self):
        """N overlapping increments starting from C end at C+N."""
        self.accounts.register("u", "pw")
        self.accounts.record_visit("u")
        self.accounts.record_visit("u")
        start = self.accounts.get_user("u").visited_count
        n = 25

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(lambda _: self.accounts.record_visit("u"), range(n)))

        self.assertEqual(self.accounts.get_user("u").visited_count, start + n)
        # Every caller saw its own increment
        self.assertEqual(sorted(results), list(range(start + 1, start + n + 1)))

    def test_seed_is_idempotent(self):
        self.assertTrue(self.accounts.seed_default_account("testuser", "password123"))
        self.accounts.record_visit("testuser")

        self.assertFalse(self.accounts.seed_default_account("testuser", "password123"))
        self.assertEqual(self.count_users("testuser"), 1)
        self.assertEqual(self.accounts.get_user("testuser").visited_count, 1)

    def test_get_user_missing(self):
        self.assertIsNone(self.accounts.get_user("nobody"))

    def test_long_password_must_match_exactly(self):
        """Passwords sharing the first 72 bytes are still different passwords."""
        self.accounts.register("alice", "A" * 72 + "right")

        with self.assertRaises(InvalidCredentials):
            self.accounts.authenticate("alice", "A" * 72 + "WRONG")
        self.assertEqual(self.accounts.authenticate("alice", "A" * 72 + "right").username, "alice")

    def test_password_with_nul_character(self):
        self.accounts.register("bob", "pa\x00ss")

        self.assertEqual(self.accounts.authenticate("bob", "pa\x00ss").username, "bob")
        with self.assertRaises(InvalidCredentials):
            self.accounts.authenticate("bob", "pa")

    def test_plain_bcrypt_refuses_passwords_it_would_truncate(self):
        accounts = AccountStore(self.db, make_pwd_context(["bcrypt"], bcrypt_rounds=TEST_ROUNDS))

        with self.assertRaises(InvalidPassword):
            accounts.register("alice", "A" * 73)
        with self.assertRaises(InvalidPassword):
            accounts.register("alice", "pa\x00ss")
        self.assertEqual(self.count_users("alice"), 0)

        accounts.register("carol", "A" * 72)
        with self.assertRaises(InvalidCredentials):
            accounts.authenticate("carol", "A" * 72 + "extra")
        with self.assertRaises(InvalidCredentials):
            accounts.authenticate("carol", "A\x00")
        self.assertEqual(accounts.authenticate("carol", "A" * 72).username, "carol")

    def test_empty_stored_password_costs_a_hash(self):
        with self.db.get_db() as conn:
            conn.execute("INSERT INTO users (username, password) VALUES ('blank', '')")
            conn.execute("INSERT INTO users (username, password) VALUES ('null', NULL)")

        with patch.object(self.accounts.pwd_context, "dummy_verify") as dummy_verify:
            for username in ("blank", "null"):
                with self.assertRaises(InvalidCredentials):
                    self.accounts.authenticate(username, "")
        self.assertEqual(dummy_verify.call_count, 2)


if __name__ == '__main__':
    unittest.main()
