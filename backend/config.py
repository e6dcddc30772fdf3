import os
from dataclasses import dataclass

from dotenv import load_dotenv

# Charger les variables d'environnement
load_dotenv()


@dataclass
class Config:
    """Configuration centralisée de l'application"""

    # Bases de données
    DATABASE_URL: str = os.getenv('DATABASE_URL', 'sqlite:///database/stock_opname.db')
    # Base ERP Ascend (par défaut la même base que l'usine)
    ASCEND_DATABASE_URL: str = os.getenv('ASCEND_DATABASE_URL', '')

    # Dossiers
    LOG_FOLDER: str = os.getenv('LOG_FOLDER', 'logs')
    SETTINGS_PATH: str = os.getenv(
        'SETTINGS_PATH',
        os.path.join(os.path.dirname(os.path.abspath(__file__)), 'settings', 'stock_opname.yaml')
    )

    # Requêtes agrégées lancées en parallèle
    AGGREGATE_WORKERS: int = int(os.getenv('AGGREGATE_WORKERS', 4))

    # Sécurité
    SECRET_KEY: str = os.getenv('SECRET_KEY', 'dev-key-change-in-production')

    def __post_init__(self):
        """Création automatique des dossiers"""
        os.makedirs(self.LOG_FOLDER, exist_ok=True)


# Instance globale
config = Config()
