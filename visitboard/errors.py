class VisitboardError(Exception):
    """Base class for errors raised by the account store and message log"""


class DuplicateUsername(VisitboardError):
    def __init__(self, username: str):
        super().__init__(f"Username already exists: {username}")
        self.username = username


class InvalidCredentials(VisitboardError):
    # Same message for unknown user and wrong password
    def __init__(self):
        super().__init__("Invalid username or password")


class StoreError(VisitboardError):
    """Storage failure: connectivity, lock timeout or unclassified constraint"""


class InvalidPassword(VisitboardError):
    """Password the configured hash scheme cannot store (e.g. oversized)"""
