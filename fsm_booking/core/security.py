"""Security utilities: secret encryption and capability tokens."""

import secrets

from cryptography.fernet import Fernet

from fsm_booking.core.config import get_settings

settings = get_settings()


# ── Customer access tokens ───────────────────────────────────

def generate_access_token() -> str:
    """Generate a 256-bit URL-safe token.

    The token is the only credential a customer holds for their booking
    instance, so it must be unguessable.
    """
    return secrets.token_urlsafe(32)


def generate_instance_id() -> str:
    return f"inst_{secrets.token_hex(12)}"


def mask_token(token: str) -> str:
    """Shorten a token for log lines."""
    return f"{token[:6]}…" if len(token) > 6 else "…"


# ── Field-level encryption (Fernet) ──────────────────────────

def _get_fernet() -> Fernet:
    if not settings.encryption_key:
        raise RuntimeError("ENCRYPTION_KEY is not configured")
    return Fernet(settings.encryption_key.encode())


def encrypt_value(plaintext: str) -> str:
    """Encrypt a string value. Returns base64 ciphertext."""
    return _get_fernet().encrypt(plaintext.encode()).decode()


def decrypt_value(ciphertext: str) -> str:
    """Decrypt a Fernet-encrypted value."""
    return _get_fernet().decrypt(ciphertext.encode()).decode()
