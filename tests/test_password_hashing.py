"""Tests for password hashing through passlib."""

from __future__ import annotations

import sys
import unittest
from pathlib import Path


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from storerate.database import hash_password, verify_password  # noqa: E402


class PasswordHashingTests(unittest.TestCase):
    def test_hash_and_verify(self) -> None:
        hashed = hash_password("Secure#Pass1")

        self.assertTrue(hashed.startswith("$pbkdf2-sha256$"))
        self.assertTrue(verify_password("Secure#Pass1", hashed))
        self.assertFalse(verify_password("incorrect", hashed))

    def test_hashes_are_salted(self) -> None:
        self.assertNotEqual(hash_password("Same#Pass1"), hash_password("Same#Pass1"))

    def test_malformed_hash_does_not_verify(self) -> None:
        """A corrupted stored hash must read as a mismatch, not an error."""

        self.assertFalse(verify_password("Secure#Pass1", "not-a-real-hash"))


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
