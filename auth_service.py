"""
Account authentication, session cookies and route guards
"""
import logging
from functools import wraps
from flask import request, g, current_app
from models import ACCOUNT_MODELS, db
from errors import ValidationError, AuthRequired, Forbidden, NotFound, Conflict
from token_service import get_token_service


logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8


def normalize_email(email):
    return email.strip().lower() if isinstance(email, str) else ''


def account_model_for(role):
    model = ACCOUNT_MODELS.get(role) if isinstance(role, str) else None
    if model is None:
        raise ValidationError('Role must be patient or doctor', 'INVALID_ROLE')
    return model


class AuthService:
    """Signup, signin and profile maintenance for patients and doctors"""

    @staticmethod
    def signup(role, name, email, password, phone=None, specialization=None):
        """Create an account; emails are unique within each role"""
        model = account_model_for(role)
        normalized_email = normalize_email(email)

        if not normalized_email:
            raise ValidationError('Email is required')
        if not isinstance(password, str) or not password:
            raise ValidationError('Password is required')
        name = name.strip() if isinstance(name, str) else ''
        if model.role == 'doctor' and not name:
            raise ValidationError('Name is required')

        if model.query.filter_by(email=normalized_email).first():
            logger.warning(f"Signup rejected: {role} '{normalized_email}' already exists")
            raise Conflict(f"{role.capitalize()} already exists", 'ACCOUNT_EXISTS')

        account = model(name=name or None, email=normalized_email)
        account.apply_role_fields({'phone': phone, 'specialization': specialization})
        account.set_password(password)

        db.session.add(account)
        db.session.commit()

        logger.info(f"{role} account {account.id} registered")
        return account

    @staticmethod
    def signin(role, email, password):
        """Return the account for valid credentials"""
        model = account_model_for(role)
        normalized_email = normalize_email(email)

        if not normalized_email or not isinstance(password, str) or not password:
            raise ValidationError('Email and password are required')

        account = model.query.filter_by(email=normalized_email).first()
        if not account or not account.check_password(password):
            logger.warning(f"Authentication failed for {role} '{normalized_email}'")
            raise AuthRequired('Invalid credentials', 'INVALID_CREDENTIALS')

        logger.info(f"{role} account {account.id} authenticated successfully")
        return account

    @staticmethod
    def get_account(account_id, role):
        model = account_model_for(role)
        try:
            account = db.session.get(model, int(account_id))
        except (TypeError, ValueError):
            account = None
        if not account:
            raise NotFound('Account not found', 'ACCOUNT_NOT_FOUND')
        return account

    @staticmethod
    def update_profile(account, data):
        """Update name, email, role fields and optionally the password"""
        if 'name' in data:
            name = data.get('name')
            name = name.strip() if isinstance(name, str) else ''
            if not name:
                raise ValidationError('Name is required')
            account.name = name

        if 'email' in data:
            normalized_email = normalize_email(data.get('email'))
            if not normalized_email:
                raise ValidationError('Email is required')
            if normalized_email != account.email:
                model = type(account)
                if model.query.filter_by(email=normalized_email).first():
                    raise Conflict('Email already in use', 'ACCOUNT_EXISTS')
                account.email = normalized_email

        account.apply_role_fields(data)

        new_password = data.get('newPassword')
        if new_password:
            if not isinstance(new_password, str):
                raise ValidationError('New password must be a string', 'WEAK_PASSWORD')
            if not account.check_password(data.get('currentPassword')):
                raise ValidationError('Current password is incorrect', 'INVALID_CURRENT_PASSWORD')
            if len(new_password) < MIN_PASSWORD_LENGTH:
                raise ValidationError(
                    f'New password must be at least {MIN_PASSWORD_LENGTH} characters',
                    'WEAK_PASSWORD'
                )
            account.set_password(new_password)
            logger.info(f"{account.role} account {account.id} changed password")

        db.session.commit()
        return account


# ===== SESSION COOKIE =====

def set_session_cookie(response, token, remember_me=False):
    """Attach the session cookie; only remember_me controls its max age"""
    max_age = None
    if remember_me:
        max_age = int(current_app.config['REMEMBER_ME_MAX_AGE'].total_seconds())

    response.set_cookie(
        current_app.config['AUTH_COOKIE_NAME'],
        token,
        max_age=max_age,
        httponly=True,
        secure=current_app.config['AUTH_COOKIE_SECURE'],
        samesite=current_app.config['AUTH_COOKIE_SAMESITE'],
    )
    return response


def clear_session_cookie(response):
    response.delete_cookie(
        current_app.config['AUTH_COOKIE_NAME'],
        httponly=True,
        secure=current_app.config['AUTH_COOKIE_SECURE'],
        samesite=current_app.config['AUTH_COOKIE_SAMESITE'],
    )
    return response


def load_current_user():
    """before_request hook: an invalid session is treated as anonymous"""
    token = request.cookies.get(current_app.config['AUTH_COOKIE_NAME'])
    g.current_user = get_token_service().verify_session(token) if token else None


def current_user():
    return getattr(g, 'current_user', None)


# ===== ROUTE GUARDS =====

def login_required(f):
    """Decorator to require a valid session"""
    @wraps(f)
    def decorated(*args, **kwargs):
        if not current_user():
            raise AuthRequired()
        return f(*args, **kwargs)
    return decorated


def role_required(*allowed_roles):
    """Decorator to require a session with one of the given roles"""
    def decorator(f):
        @wraps(f)
        def decorated(*args, **kwargs):
            user = current_user()
            if not user:
                raise AuthRequired()
            if user['role'] not in allowed_roles:
                logger.warning(f"Access denied for role: {user['role']}")
                raise Forbidden()
            return f(*args, **kwargs)
        return decorated
    return decorator
