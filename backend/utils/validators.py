from typing import Any, Dict, List, Optional, Tuple
import logging

from services.config_service import config_service

logger = logging.getLogger(__name__)


class RequestValidator:
    """Validation et normalisation des paramètres HTTP"""

    # jmlhSak reste facultatif : certaines catégories n'ont pas de quantité
    SCAN_REQUIRED_FIELDS = ('label', 'idlokasi', 'berat')

    @staticmethod
    def validate_required(payload: Dict[str, Any], fields) -> Tuple[bool, List[str]]:
        """Vérifie la présence des champs obligatoires"""
        if not isinstance(payload, dict):
            return False, ['Body JSON wajib diisi']

        errors = []
        for field in fields:
            value = payload.get(field)
            if value is None or (isinstance(value, str) and not value.strip()):
                errors.append(f"{field} wajib diisi")
        return len(errors) == 0, errors

    @staticmethod
    def normalize_label(value: Any) -> str:
        if value is None:
            return ''
        return str(value).strip().upper()

    @staticmethod
    def normalize_blok(value: Any) -> Optional[str]:
        """Blok sans espaces, en majuscules ; vide → None"""
        if value is None:
            return None
        blok = str(value).strip().upper()
        if not blok or blok == 'ALL':
            return None
        return blok

    @staticmethod
    def parse_idlokasi(value: Any) -> Optional[int]:
        return RequestValidator.parse_int(value, 'idlokasi')

    @staticmethod
    def parse_int(value: Any, field: str) -> Optional[int]:
        """Entier ; vide ou 'all' → None, non numérique → ValueError"""
        if value is None:
            return None
        if isinstance(value, bool):
            raise ValueError(f"{field} harus berupa angka")
        if isinstance(value, int):
            return value
        if isinstance(value, float) and value.is_integer():
            return int(value)
        text = str(value).strip()
        if not text or text.lower() == 'all':
            return None
        try:
            return int(text)
        except ValueError:
            raise ValueError(f"{field} harus berupa angka")

    @staticmethod
    def parse_number(value: Any, field: str, default: float = 0.0) -> float:
        if value is None or value == '':
            return default
        if isinstance(value, bool):
            raise ValueError(f"{field} harus berupa angka")
        try:
            return float(value)
        except (TypeError, ValueError):
            raise ValueError(f"{field} harus berupa angka")

    @staticmethod
    def parse_pagination(args) -> Tuple[int, int]:
        """Page (>= 1) et taille de page bornée par la configuration"""
        limits = config_service.get_pagination_config()
        default_size = int(limits.get('default_page_size', 20))
        max_size = int(limits.get('max_page_size', 200))

        try:
            page = int(args.get('page', 1))
        except (TypeError, ValueError):
            page = 1
        try:
            page_size = int(args.get('pageSize', default_size))
        except (TypeError, ValueError):
            page_size = default_size

        page = max(page, 1)
        page_size = min(max(page_size, 1), max_size)
        return page, page_size

    @staticmethod
    def parse_bool(value: Any) -> bool:
        if isinstance(value, bool):
            return value
        return str(value).strip().lower() in ('true', '1', 'yes')
