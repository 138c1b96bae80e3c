# Password hashing, download tokens, JWT helpers

import hmac
import logging
from functools import wraps

from Crypto.Hash import SHA256
from Crypto.Protocol.KDF import PBKDF2
from Crypto.Random import get_random_bytes
from flask import current_app
from flask_jwt_extended import create_access_token, get_jwt, verify_jwt_in_request

from .errors import ForbiddenError

HASH_SCHEME = 'pbkdf2_sha256'
DEFAULT_ITERATIONS = 200_000

# --- Password hashing (PBKDF2-HMAC-SHA256) ---

def _derive_key(password: str, salt: bytes, iterations: int) -> bytes:
    logging.debug(f'Deriving key with PBKDF2: iterations={iterations}, salt_len={len(salt)}')
    return PBKDF2(password, salt, dkLen=32, count=iterations, hmac_hash_module=SHA256)

def hash_password(password: str, iterations: int = None) -> str:
    """Return a salted hash encoded as scheme$iterations$salt$hash."""
    if iterations is None:
        iterations = current_app.config.get('PASSWORD_HASH_ITERATIONS', DEFAULT_ITERATIONS)
    salt = get_random_bytes(16)
    key = _derive_key(password, salt, iterations)
    return f'{HASH_SCHEME}${iterations}${salt.hex()}${key.hex()}'

def verify_password(password: str, encoded: str) -> bool:
    try:
        scheme, iterations, salt_hex, key_hex = encoded.split('$')
        if scheme != HASH_SCHEME:
            return False
        key = _derive_key(password, bytes.fromhex(salt_hex), int(iterations))
    except (ValueError, AttributeError):
        logging.debug('Stored password hash is malformed')
        return False
    return hmac.compare_digest(key.hex(), key_hex)

# --- Download tokens ---

def generate_download_token() -> str:
    """32 random bytes, hex-encoded."""
    return get_random_bytes(32).hex()

# --- JWT ---

def issue_access_token(user) -> str:
    return create_access_token(
        identity=str(user.id),
        additional_claims={'email': user.email, 'is_admin': bool(user.is_admin)},
    )

def admin_required(view):
    """Require a valid access token whose is_admin claim is true.

    The claim is trusted as issued; a demoted admin keeps access until the
    token expires.
    """
    @wraps(view)
    def wrapper(*args, **kwargs):
        verify_jwt_in_request()
        if not get_jwt().get('is_admin'):
            raise ForbiddenError('Admin only')
        return view(*args, **kwargs)
    return wrapper
