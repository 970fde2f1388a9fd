"""
Cryptographically-secure random value generators.
"""

import os
import secrets

from config.settings import Settings


class SecureRandom:

    @staticmethod
    def generate_nonce(length: int = Settings.NONCE_SIZE) -> bytes:
        return os.urandom(length)

    @staticmethod
    def generate_key_material(length: int = Settings.KEY_MATERIAL_SIZE) -> bytes:
        return os.urandom(length)

    @staticmethod
    def generate_session_id() -> str:
        return secrets.token_hex(8)
