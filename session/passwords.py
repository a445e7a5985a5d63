"""
Password hashing with bcrypt.
"""

import asyncio

import bcrypt

# bcrypt only reads the first 72 bytes and newer releases reject longer input
MAX_PASSWORD_BYTES = 72


class PasswordHasher:
    """One-way hash and verify. Work is pushed to a thread to keep the event loop free."""

    def __init__(self, rounds: int = 10):
        self.rounds = rounds

    def hash_sync(self, password: str) -> str:
        """Hash a password using bcrypt"""
        salt = bcrypt.gensalt(rounds=self.rounds)
        return bcrypt.hashpw(password.encode('utf-8'), salt).decode('utf-8')

    def verify_sync(self, password: str, password_hash: str) -> bool:
        """Verify a password against its hash"""
        try:
            return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
        except ValueError:
            # Stored value is not a bcrypt hash
            return False

    async def hash(self, password: str) -> str:
        return await asyncio.to_thread(self.hash_sync, password)

    async def verify(self, password: str, password_hash: str) -> bool:
        return await asyncio.to_thread(self.verify_sync, password, password_hash)
