import logging
from flask import g, jsonify, request

logger = logging.getLogger(__name__)

# En-têtes posés par la passerelle d'authentification
USERNAME_HEADER = 'X-Username'
USER_ID_HEADER = 'X-User-Id'
PERMISSIONS_HEADER = 'X-User-Permissions'


def current_username():
    return getattr(g, 'username', None)


def current_user_id():
    return getattr(g, 'user_id', None)


def require_user(permission: str = None):
    """Décorateur exigeant un utilisateur authentifié (et une permission)"""
    def decorator(func):
        def wrapper(*args, **kwargs):
            username = (request.headers.get(USERNAME_HEADER) or '').strip()
            if not username:
                return jsonify({
                    'success': False,
                    'message': 'Unauthorized',
                    'error': 'Utilisateur non authentifié'
                }), 401

            raw_id = request.headers.get(USER_ID_HEADER)
            try:
                user_id = int(raw_id) if raw_id else None
            except ValueError:
                user_id = None

            permissions = {
                p.strip() for p in (request.headers.get(PERMISSIONS_HEADER) or '').split(',')
                if p.strip()
            }
            if permission and permission not in permissions:
                logger.warning(f"Permission {permission} refusée pour {username}")
                return jsonify({
                    'success': False,
                    'message': 'Forbidden',
                    'error': f'Permission {permission} requise'
                }), 403

            g.username = username
            g.user_id = user_id
            g.permissions = permissions
            return func(*args, **kwargs)

        wrapper.__name__ = func.__name__
        return wrapper
    return decorator
