"""
Password hashing for account credentials.

Hashes are PBKDF2-HMAC derived keys. Salt, iteration count, key length and
digest are returned (and stored) alongside the hash so older accounts keep
verifying after the defaults change.
"""
import hashlib
import hmac
import os

ITERATIONS = 100000
KEYLEN = 64
DIGEST = 'sha512'


def _derive(password, salt, iterations, keylen, digest):
    return hashlib.pbkdf2_hmac(
        digest,
        password.encode('utf-8'),
        salt.encode('utf-8'),
        iterations,
        dklen=keylen,
    ).hex()


def hash_password(password):
    """Hash password with a fresh random salt"""
    if not isinstance(password, str) or not password:
        raise ValueError('Password is required')

    salt = os.urandom(16).hex()
    return {
        'salt': salt,
        'hash': _derive(password, salt, ITERATIONS, KEYLEN, DIGEST),
        'iterations': ITERATIONS,
        'keylen': KEYLEN,
        'digest': DIGEST,
    }


def verify_password(password, stored):
    """Check password against stored credential material"""
    if not isinstance(password, str) or not password:
        return False
    if not stored or not stored.get('salt') or not stored.get('hash'):
        return False

    candidate = _derive(
        password,
        stored['salt'],
        stored.get('iterations') or ITERATIONS,
        stored.get('keylen') or KEYLEN,
        stored.get('digest') or DIGEST,
    )
    if len(candidate) != len(stored['hash']):
        return False
    return hmac.compare_digest(candidate, stored['hash'])
