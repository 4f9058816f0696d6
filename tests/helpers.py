import os
import tempfile

from visitboard.accounts import AccountStore, make_pwd_context
from visitboard.database import Database
from visitboard.messages import MessageLog

# Minimum bcrypt cost keeps the suite fast
TEST_ROUNDS = 4


class StoreTestMixin:
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.db_path = os.path.join(self.tmpdir.name, "users.db")
        self.db = Database(self.db_path, timeout=5.0)
        self.db.init_db()
        self.accounts = AccountStore(self.db, make_pwd_context(bcrypt_rounds=TEST_ROUNDS))
        self.messages = MessageLog(self.db)

    def tearDown(self):
        self.db.close()
        self.tmpdir.cleanup()

    def count_users(self, username):
        with self.db.get_db() as conn:
            return conn.execute("SELECT COUNT(*) FROM users WHERE username = ?", (username,)).fetchone()[0]
