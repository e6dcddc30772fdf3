import threading
import time
from collections import defaultdict, deque
from typing import Dict, Tuple
from flask import request, jsonify
import logging

from services.config_service import config_service

logger = logging.getLogger(__name__)

# (nom, durée en secondes, message de refus)
WINDOWS = (
    ('minute', 60, 'Terlalu banyak permintaan per menit'),
    ('hour', 3600, 'Terlalu banyak permintaan per jam'),
)


class SimpleRateLimiter:
    """Fenêtres glissantes en mémoire, par (IP, type d'endpoint).

    Le type 'scan' (validate-label / insert-label) a son propre quota par
    minute ; seules les requêtes acceptées consomment le quota.
    """

    def __init__(self, limits: Dict[str, int] = None):
        self.requests: Dict[Tuple[str, str], deque] = defaultdict(deque)
        self.default_limits = limits or config_service.get_rate_limits()
        self._lock = threading.Lock()

    def limits_for(self, endpoint_type: str) -> Dict[str, int]:
        if endpoint_type == 'scan':
            per_minute = self.default_limits.get('scan_per_minute', 90)
        else:
            per_minute = self.default_limits.get('requests_per_minute', 120)
        return {
            'minute': int(per_minute),
            'hour': int(self.default_limits.get('requests_per_hour', 3000)),
        }

    def is_allowed(self, client_ip: str, endpoint_type: str = 'default') -> Tuple[bool, Dict]:
        now = time.time()
        limits = self.limits_for(endpoint_type)

        with self._lock:
            history = self.requests[(client_ip, endpoint_type)]
            while history and history[0] <= now - WINDOWS[-1][1]:
                history.popleft()

            counts = {
                name: sum(1 for stamp in history if stamp > now - seconds)
                for name, seconds, _ in WINDOWS
            }
            for name, seconds, message in WINDOWS:
                if counts[name] >= limits[name]:
                    return False, {'error': message, 'retry_after': seconds, 'limit': limits[name]}

            history.append(now)

        info = {}
        for name, _, _ in WINDOWS:
            info[f'limit_{name}'] = limits[name]
            info[f'remaining_{name}'] = limits[name] - counts[name] - 1
        return True, info

    def reset(self):
        with self._lock:
            self.requests.clear()


def client_ip() -> str:
    """IP d'origine, derrière un éventuel proxy (X-Forwarded-For)"""
    route = request.access_route
    return route[0] if route else (request.remote_addr or 'unknown')


# Instance globale
rate_limiter = SimpleRateLimiter()


def apply_rate_limit(endpoint_type: str = 'default'):
    """Décorateur d'endpoint : 429 au-delà du quota"""
    def decorator(func):
        def wrapper(*args, **kwargs):
            ip = client_ip()
            allowed, info = rate_limiter.is_allowed(ip, endpoint_type)

            if not allowed:
                logger.warning(f"Quota {endpoint_type} dépassé pour {ip}")
                response = jsonify({
                    'success': False,
                    'message': info['error'],
                    'error': 'RateLimitExceeded',
                    'retry_after': info['retry_after'],
                })
                response.status_code = 429
                response.headers['Retry-After'] = str(info['retry_after'])
                return response

            response = func(*args, **kwargs)

            # Les vues renvoient parfois un tuple (réponse, statut)
            target = response[0] if isinstance(response, tuple) else response
            if hasattr(target, 'headers'):
                for name, _, _ in WINDOWS:
                    suffix = name.capitalize()
                    target.headers[f'X-RateLimit-Limit-{suffix}'] = str(info[f'limit_{name}'])
                    target.headers[f'X-RateLimit-Remaining-{suffix}'] = str(info[f'remaining_{name}'])
            return response

        wrapper.__name__ = func.__name__
        return wrapper
    return decorator
