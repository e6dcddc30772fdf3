import logging
import re
import uuid
from typing import Dict, Any
from flask import current_app, jsonify, has_app_context
from sqlalchemy.exc import OperationalError

logger = logging.getLogger(__name__)


class StockOpnameError(Exception):
    """Erreur métier remontée telle quelle à l'opérateur"""
    status_code = 500

    def __init__(self, message: str, **details):
        super().__init__(message)
        self.message = message
        self.details = details


class LabelFormatError(StockOpnameError, ValueError):
    """Étiquette absente ou au format non reconnu"""
    status_code = 400


class MissingFieldError(StockOpnameError, ValueError):
    status_code = 400


class BatchNotFoundError(StockOpnameError):
    status_code = 404


class DuplicateScanError(StockOpnameError):
    """Un autre comptage pour (NoSO, étiquette) a été validé entre-temps"""
    status_code = 409


class LabelVanishedError(StockOpnameError):
    """La ligne source a disparu entre la validation et l'enregistrement"""
    status_code = 500


SERVER_ERROR_MESSAGE = 'Terjadi kesalahan pada server'


class ErrorSanitizer:
    """Message présentable à l'opérateur pour une exception quelconque"""

    # Chemins, adresses mémoire, secrets de chaîne de connexion
    SENSITIVE_PATTERNS = [
        r'(/[\w\-./]+)',
        r'([A-Za-z]:\\[\w\-\\.:]+)',
        r'(0x[0-9a-fA-F]+)',
        r'((?:password|pwd|token)\s*[=:]\s*[^\s;]+)',
    ]

    # Erreurs d'infrastructure : l'opérateur doit revalider puis réessayer
    GENERIC_MESSAGES = {
        'OperationalError': 'Database tidak tersedia, silakan coba lagi',
        'IntegrityError': 'Data bertabrakan dengan transaksi lain, silakan validasi ulang',
        'ConnectionError': 'Koneksi terputus, silakan coba lagi',
        'TimeoutError': 'Waktu tunggu habis, silakan coba lagi',
    }

    MAX_LENGTH = 200

    @classmethod
    def sanitize_error_message(cls, error: Exception, include_type: bool = True) -> str:
        if isinstance(error, StockOpnameError):
            return error.message

        error_type = type(error).__name__
        if error_type in cls.GENERIC_MESSAGES:
            message = cls.GENERIC_MESSAGES[error_type]
        elif isinstance(error, (ValueError, TypeError)):
            # Messages des conversions de paramètres (idlokasi, berat, tglSO...)
            message = cls.mask(str(error))
        elif has_app_context() and current_app.config.get('DEBUG', False):
            message = cls.mask(str(error))
        else:
            message = SERVER_ERROR_MESSAGE

        return f"{error_type}: {message}" if include_type else message

    @classmethod
    def mask(cls, message: str) -> str:
        for pattern in cls.SENSITIVE_PATTERNS:
            message = re.sub(pattern, '[MASKED]', message, flags=re.IGNORECASE)
        if len(message) > cls.MAX_LENGTH:
            message = message[:cls.MAX_LENGTH] + '...'
        return message or SERVER_ERROR_MESSAGE


class APIErrorHandler:
    """Réponses JSON d'erreur et codes HTTP"""

    @staticmethod
    def handle_error(error: Exception, context: str = "") -> Dict[str, Any]:
        error_id = APIErrorHandler._generate_error_id()
        context = context or 'unknown'

        if isinstance(error, StockOpnameError) and error.status_code < 500:
            logger.warning(f"[{error_id}] {context}: {error.message} {error.details or ''}")
        else:
            logger.error(f"[{error_id}] {context}: {type(error).__name__}: {error}", exc_info=True)

        return {
            'success': False,
            'message': ErrorSanitizer.sanitize_error_message(error, include_type=False),
            'error': type(error).__name__,
            'error_id': error_id,
            'context': context,
        }

    @staticmethod
    def handle_validation_error(errors: list, context: str = "validation") -> Dict[str, Any]:
        """Champs obligatoires manquants"""
        error_id = APIErrorHandler._generate_error_id()
        logger.warning(f"[{error_id}] {context}: {errors}")

        return {
            'success': False,
            'message': errors[0] if errors else 'Data tidak valid',
            'error': 'ValidationError',
            'error_id': error_id,
            'context': context,
            'details': errors[:10],
        }

    @staticmethod
    def status_code_for(error: Exception) -> int:
        if isinstance(error, StockOpnameError):
            return error.status_code
        if isinstance(error, (ValueError, TypeError)):
            return 400
        if isinstance(error, PermissionError):
            return 403
        if isinstance(error, OperationalError):
            return 503
        return 500

    @staticmethod
    def _generate_error_id() -> str:
        return uuid.uuid4().hex[:8]


def handle_api_errors(context: str = ""):
    """Décorateur d'endpoint : toute exception devient une réponse JSON"""
    def decorator(func):
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except Exception as e:
                body = APIErrorHandler.handle_error(e, context or func.__name__)
                return jsonify(body), APIErrorHandler.status_code_for(e)

        wrapper.__name__ = func.__name__
        return wrapper
    return decorator
