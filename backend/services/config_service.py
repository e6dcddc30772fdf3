import yaml
import os
from typing import Dict, Any
import logging

from config import config

logger = logging.getLogger(__name__)


class ConfigService:
    """Service de gestion de la configuration métier (YAML)"""

    def __init__(self, config_path: str = None):
        self.config_path = config_path or config.SETTINGS_PATH
        self._config = None
        self.load_config()

    def load_config(self):
        """Charge la configuration depuis le fichier YAML"""
        try:
            if os.path.exists(self.config_path):
                with open(self.config_path, 'r', encoding='utf-8') as f:
                    self._config = yaml.safe_load(f) or {}
                logger.info(f"Configuration chargée depuis {self.config_path}")
            else:
                logger.warning(f"Fichier de configuration non trouvé: {self.config_path}")
                self._config = self._get_default_config()
        except Exception as e:
            logger.error(f"Erreur chargement configuration: {e}")
            self._config = self._get_default_config()

    def _get_default_config(self) -> Dict[str, Any]:
        """Configuration par défaut si le fichier n'existe pas"""
        return {
            'stock_opname': {
                'pagination': {
                    'default_page_size': 20,
                    'max_page_size': 200,
                },
                'cutoff': {
                    'default_period': '2000-01-01',
                },
                'notifications': {
                    'event_name': 'label_inserted',
                    'queue_size': 100,
                    'keepalive_seconds': 15,
                },
                'rate_limits': {
                    'requests_per_minute': 120,
                    'requests_per_hour': 3000,
                    'scan_per_minute': 90,
                },
            }
        }

    def _section(self, name: str) -> Dict[str, Any]:
        defaults = self._get_default_config()['stock_opname'].get(name, {})
        values = (self._config or {}).get('stock_opname', {}).get(name) or {}
        merged = dict(defaults)
        merged.update(values)
        return merged

    def get_pagination_config(self) -> Dict[str, int]:
        """Retourne les bornes de pagination"""
        return self._section('pagination')

    def get_default_cutoff(self) -> str:
        """Date de clôture utilisée quand aucune clôture journalière n'existe"""
        return self._section('cutoff').get('default_period', '2000-01-01')

    def get_notification_config(self) -> Dict[str, Any]:
        return self._section('notifications')

    def get_rate_limits(self) -> Dict[str, int]:
        return self._section('rate_limits')

    def reload_config(self):
        """Recharge la configuration depuis le fichier"""
        self.load_config()


# Instance globale
config_service = ConfigService()
