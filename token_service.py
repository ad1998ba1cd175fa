"""
Signed token issuance and verification (session and record access)
"""
import jwt
import logging
from datetime import datetime, timedelta, timezone
from flask import current_app

from errors import InvalidToken, TokenExpired, WrongScope, RecordMismatch


logger = logging.getLogger(__name__)

SESSION_SCOPE = 'auth'
RECORD_SCOPE = 'record:read'


def _utc_clock():
    return datetime.now(timezone.utc)


class TokenService:
    """Issue and verify HS256 tokens with a single signing key.

    Expiry is checked against ``clock`` rather than inside PyJWT so
    validity is a function of the claims and the injected time only.
    """

    def __init__(
        self,
        secret_key,
        algorithm='HS256',
        session_ttl=timedelta(days=30),
        record_ttl=timedelta(minutes=10),
        clock=None
    ):
        if not secret_key:
            raise RuntimeError("JWT_SECRET not configured")

        self.secret_key = secret_key
        self.algorithm = algorithm
        self.session_ttl = session_ttl
        self.record_ttl = record_ttl
        self.clock = clock or _utc_clock

    @classmethod
    def from_config(cls, config):
        return cls(
            config.get('JWT_SECRET_KEY'),
            algorithm=config.get('JWT_ALGORITHM', 'HS256'),
            session_ttl=config.get('SESSION_TOKEN_EXPIRES', timedelta(days=30)),
            record_ttl=config.get('RECORD_TOKEN_EXPIRES', timedelta(minutes=10)),
        )

    def _encode(self, claims, ttl):
        now = self.clock()
        payload = dict(claims)
        payload['iat'] = int(now.timestamp())
        payload['exp'] = int((now + ttl).timestamp())
        return jwt.encode(payload, self.secret_key, algorithm=self.algorithm)

    def _decode(self, token):
        """Decode and check expiry; raises PyJWT errors or TokenExpired"""
        payload = jwt.decode(
            token,
            self.secret_key,
            algorithms=[self.algorithm],
            options={'verify_exp': False, 'verify_iat': False, 'require': ['exp', 'sub']}
        )
        if int(self.clock().timestamp()) >= int(payload['exp']):
            raise TokenExpired()
        return payload

    # ===== SESSION TOKENS =====

    def issue_session(self, account_id, role, remember_me=False):
        """Session token for an account.

        The token always carries the full session lifetime; ``remember_me``
        only changes how long the cookie is kept by the client.
        """
        return self._encode(
            {'sub': str(account_id), 'role': role, 'scope': SESSION_SCOPE},
            self.session_ttl
        )

    def verify_session(self, token):
        """Return {'id', 'role'} for a valid session token, otherwise None"""
        if not token:
            return None
        try:
            payload = self._decode(token)
        except TokenExpired:
            logger.warning("Session token has expired")
            return None
        except jwt.InvalidTokenError as e:
            logger.warning(f"Invalid session token: {str(e)}")
            return None

        if payload.get('scope') != SESSION_SCOPE or not payload.get('role'):
            logger.warning("Session token has wrong scope")
            return None

        return {'id': payload['sub'], 'role': payload['role']}

    # ===== RECORD ACCESS TOKENS =====

    def issue_record_token(self, record_id, ttl=None):
        """Short lived token granting read access to exactly one record"""
        return self._encode(
            {'sub': str(record_id), 'scope': RECORD_SCOPE},
            ttl or self.record_ttl
        )

    def verify_record_token(self, token, expected_record_id):
        """Verify signature and expiry, then scope, then subject, in that order"""
        if not token:
            raise InvalidToken('token is required')

        try:
            payload = self._decode(token)
        except TokenExpired:
            logger.warning(f"Record token expired for record {expected_record_id}")
            raise
        except jwt.InvalidTokenError as e:
            logger.warning(f"Invalid record token for record {expected_record_id}: {str(e)}")
            raise InvalidToken()

        if payload.get('scope') != RECORD_SCOPE:
            logger.warning(f"Record token with scope {payload.get('scope')!r} for record {expected_record_id}")
            raise WrongScope()

        if str(payload.get('sub')) != str(expected_record_id):
            logger.warning(f"Record token for {payload.get('sub')} presented for record {expected_record_id}")
            raise RecordMismatch()

        return payload


def get_token_service():
    return current_app.extensions['token_service']
