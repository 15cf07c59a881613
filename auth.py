"""Bearer-token identity and permission gates.

Tokens are itsdangerous signatures over ``{'user_id', 'ttl'}``; Flask-Login's
request loader turns a valid ``Authorization: Bearer <token>`` header into
``current_user`` and leaves the anonymous user in place otherwise, so every
route is "optional auth" until a decorator below demands more.
"""
import time
from functools import wraps

from flask import abort, current_app, jsonify
from flask_login import current_user
from itsdangerous import BadSignature, URLSafeTimedSerializer

from extensions import login_manager
from models import Permission, Role, User


def _serializer():
    return URLSafeTimedSerializer(current_app.config['SECRET_KEY'], salt=current_app.config['TOKEN_SALT'])


def token_ttl(role):
    if Role(role) is Role.GUEST:
        return current_app.config['TOKEN_TTL_GUEST']
    return current_app.config['TOKEN_TTL_USER']


def issue_token(user_id, role):
    return _serializer().dumps({'user_id': str(user_id), 'ttl': token_ttl(role)})


def verify_token(token):
    """Return the user a token belongs to, or None if it is forged, stale or orphaned."""
    try:
        payload, signed_at = _serializer().loads(token, return_timestamp=True)
    except BadSignature:
        return None
    if time.time() - signed_at.timestamp() > payload.get('ttl', 0):
        return None
    return User.get(payload.get('user_id'))


def bearer_token(request):
    header = request.headers.get('Authorization', '')
    if not header.lower().startswith('bearer '):
        return None
    return header.split(' ', 1)[1].strip() or None


@login_manager.user_loader
def load_user(user_id):
    return User.get(user_id)


@login_manager.request_loader
def load_user_from_request(request):
    token = bearer_token(request)
    if not token:
        return None
    return verify_token(token)


@login_manager.unauthorized_handler
def unauthorized():
    return jsonify({'message': 'Authentication required'}), 401


DENIED_MESSAGES = {
    Permission.POST: 'Guest users cannot post content',
    Permission.VOTE: 'Guest users cannot vote',
    Permission.MODERATE: 'Admin access required',
}


def permission_required(permission):
    """Gate a view on a named permission.

    ``view`` is open to everyone; any other permission needs a signed-in user
    (401) whose role grants it (403).
    """
    permission = Permission(permission)

    def decorator(f):
        @wraps(f)
        def decorated(*args, **kwargs):
            if permission is not Permission.VIEW:
                if not current_user.is_authenticated:
                    abort(401, description='Authentication required')
                if not current_user.can(permission):
                    abort(403, description=DENIED_MESSAGES.get(permission, 'Insufficient permissions'))
            return f(*args, **kwargs)
        return decorated
    return decorator


admin_required = permission_required(Permission.MODERATE)


def owner_or_admin(owner_id, message='Not authorized'):
    if not (current_user.owns(owner_id) or current_user.is_admin):
        abort(403, description=message)
