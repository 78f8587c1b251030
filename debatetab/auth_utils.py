from datetime import datetime, timedelta, timezone
from functools import wraps

import jwt
from flask import request, jsonify, current_app
from debatetab.app import db
from debatetab.models import User

_TOKEN_ALGORITHM = 'HS256'


def generate_token(user_id):
    """Issue a bearer token for a tab-room user."""
    issued_at = datetime.now(timezone.utc)
    hours = current_app.config.get('JWT_EXPIRATION_HOURS', 24)
    return jwt.encode(
        {'user_id': user_id, 'iat': issued_at, 'exp': issued_at + timedelta(hours=hours)},
        current_app.config['SECRET_KEY'],
        algorithm=_TOKEN_ALGORITHM,
    )


def _strip_bearer(raw_header):
    value = str(raw_header or '').strip()
    scheme, _, credentials = value.partition(' ')
    if scheme == 'Bearer':
        return credentials.strip()
    return value


def resolve_user(raw_header):
    """Return (user, error) for an Authorization header value."""
    token = _strip_bearer(raw_header)
    if not token:
        return None, 'Authentication required'
    try:
        claims = jwt.decode(token, current_app.config['SECRET_KEY'], algorithms=[_TOKEN_ALGORITHM])
    except jwt.ExpiredSignatureError:
        return None, 'Token expired'
    except jwt.InvalidTokenError:
        return None, 'Invalid token'
    user = db.session.get(User, claims.get('user_id'))
    if user is None:
        return None, 'User not found'
    return user, None


def login_required(f):
    """Decorator to require authentication on a route."""
    @wraps(f)
    def decorated(*args, **kwargs):
        user, error = resolve_user(request.headers.get('Authorization', ''))
        if error:
            return jsonify({'error': error}), 401
        request.current_user = user
        return f(*args, **kwargs)
    return decorated


def _role_guard(check):
    """Build a decorator that runs `check(user)` after login; a returned message means 403."""
    def decorator(f):
        @wraps(f)
        @login_required
        def decorated(*args, **kwargs):
            denial = check(request.current_user)
            if denial:
                return jsonify({'error': denial}), 403
            return f(*args, **kwargs)
        return decorated
    return decorator


def _check_admin(user):
    if not getattr(user, 'is_admin', False):
        return 'Admin access required'
    return None


def _check_judge(user):
    judge = getattr(user, 'judge', None)
    if not judge:
        return 'You are not a judge'
    # Ballot routes read the judge record from here.
    request.current_judge = judge
    return None


admin_required = _role_guard(_check_admin)

judge_required = _role_guard(_check_judge)
