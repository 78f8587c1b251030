import logging

from flask import Blueprint, request, jsonify, current_app
from werkzeug.security import generate_password_hash, check_password_hash
from debatetab.app import db
from debatetab.models import User, Judge
from debatetab.auth_utils import generate_token, login_required

auth_bp = Blueprint('auth', __name__)
logger = logging.getLogger(__name__)

_MIN_PASSWORD_LENGTH = 8


def _configured_admin_emails():
    raw_value = current_app.config.get('ADMIN_EMAILS', '')
    return {
        item.strip().lower()
        for item in str(raw_value).split(',')
        if item and item.strip()
    }


def _is_configured_admin_email(email):
    normalized = (email or '').strip().lower()
    return normalized in _configured_admin_emails()


def _link_judge_by_email(user):
    """Attach an unlinked judge record registered under the same email."""
    if user.judge:
        return None
    judge = Judge.query.filter(
        db.func.lower(Judge.email) == user.email,
        Judge.user_id.is_(None),
    ).first()
    if judge:
        judge.user_id = user.id
    return judge


@auth_bp.route('/register', methods=['POST'])
def register():
    data = request.get_json(silent=True)
    if not isinstance(data, dict) or not data.get('username') or not data.get('email') or not data.get('password'):
        return jsonify({'error': 'Username, email, and password are required'}), 400

    username = str(data['username']).strip()
    email = str(data['email']).strip().lower()
    password = str(data['password'])
    if len(password) < _MIN_PASSWORD_LENGTH:
        return jsonify({'error': f'Password must be at least {_MIN_PASSWORD_LENGTH} characters'}), 400

    if User.query.filter_by(username=username).first():
        return jsonify({'error': 'Username already taken'}), 409
    if User.query.filter_by(email=email).first():
        return jsonify({'error': 'Email already registered'}), 409

    user = User(
        username=username,
        email=email,
        password_hash=generate_password_hash(password),
        is_admin=_is_configured_admin_email(email),
        name=str(data.get('name') or '').strip()[:120],
    )
    db.session.add(user)
    db.session.flush()
    judge = _link_judge_by_email(user)
    db.session.commit()
    if judge:
        logger.info('Linked user %s to judge %s', user.id, judge.id)
    token = generate_token(user.id)
    return jsonify({'token': token, 'user': user.to_dict()}), 201


@auth_bp.route('/login', methods=['POST'])
def login():
    data = request.get_json(silent=True)
    if not isinstance(data, dict) or not data.get('email') or not data.get('password'):
        return jsonify({'error': 'Email and password are required'}), 400

    email = str(data['email']).strip().lower()
    user = User.query.filter_by(email=email).first()
    if not user or not check_password_hash(user.password_hash, str(data['password'])):
        return jsonify({'error': 'Invalid email or password'}), 401

    changed = False
    if not user.is_admin and _is_configured_admin_email(user.email):
        user.is_admin = True
        changed = True
    if _link_judge_by_email(user):
        changed = True
    if changed:
        db.session.commit()

    return jsonify({'token': generate_token(user.id), 'user': user.to_dict()})


@auth_bp.route('/me', methods=['GET'])
@login_required
def get_me():
    return jsonify({'user': request.current_user.to_dict()})
