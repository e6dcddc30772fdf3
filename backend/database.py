import os
from sqlalchemy import create_engine, event, text
from sqlalchemy.orm import sessionmaker, scoped_session
from config import config
from models.base import Base
from models import inventory, stock_opname, ascend  # noqa: F401  enregistre les tables sur Base.metadata
import logging

logger = logging.getLogger(__name__)


def _prepare_sqlite_folder(database_url: str):
    """Crée le dossier de la base SQLite si nécessaire"""
    if database_url.startswith('sqlite:///'):
        db_path = database_url.replace('sqlite:///', '')
        db_dir = os.path.dirname(db_path)
        if db_dir:
            os.makedirs(db_dir, exist_ok=True)


def _build_engine(database_url: str):
    _prepare_sqlite_folder(database_url)

    if database_url.startswith('sqlite'):
        engine = create_engine(
            database_url,
            echo=False,
            connect_args={'check_same_thread': False, 'timeout': 5}
        )

        @event.listens_for(engine, 'connect')
        def _sqlite_pragma(dbapi_connection, connection_record):
            # Les clés étrangères et le verrou d'écriture ne sont pas actifs par défaut
            cursor = dbapi_connection.cursor()
            cursor.execute('PRAGMA foreign_keys=ON')
            cursor.execute('PRAGMA busy_timeout=5000')
            cursor.close()

        return engine

    return create_engine(
        database_url,
        echo=False,  # Mettre à True pour debug SQL
        pool_pre_ping=True,
        pool_recycle=300
    )


class DatabaseManager:
    def __init__(self, database_url=None, ascend_database_url=None, create_schema=True):
        self.database_url = database_url or config.DATABASE_URL
        self.ascend_database_url = ascend_database_url or config.ASCEND_DATABASE_URL or None

        self.engine = _build_engine(self.database_url)

        self.SessionLocal = scoped_session(sessionmaker(
            autocommit=False,
            autoflush=False,
            bind=self.engine,
            expire_on_commit=False  # Évite que les objets deviennent détachés après commit
        ))

        # L'ERP Ascend peut vivre dans une autre base
        if self.ascend_database_url and self.ascend_database_url != self.database_url:
            self.ascend_engine = _build_engine(self.ascend_database_url)
        else:
            self.ascend_engine = self.engine

        self.AscendSessionLocal = scoped_session(sessionmaker(
            autocommit=False,
            autoflush=False,
            bind=self.ascend_engine,
            expire_on_commit=False
        ))

        if create_schema:
            self.create_tables()

    def create_tables(self):
        """Crée toutes les tables"""
        try:
            Base.metadata.create_all(bind=self.engine)
            if self.ascend_engine is not self.engine:
                Base.metadata.create_all(bind=self.ascend_engine)
            logger.info("Tables créées avec succès")
        except Exception as e:
            logger.error(f"Erreur création tables: {e}")
            raise

    def get_session(self):
        """Retourne une session de base de données (locale au thread)"""
        return self.SessionLocal()

    def get_ascend_session(self):
        """Retourne une session sur la base ERP Ascend"""
        return self.AscendSessionLocal()

    def close_session(self):
        """Ferme les sessions du thread courant"""
        self.SessionLocal.remove()
        self.AscendSessionLocal.remove()

    def health_check(self):
        """Vérifie la santé de la base de données"""
        try:
            session = self.get_session()
            session.execute(text("SELECT 1"))
            session.close()
            return True
        except Exception as e:
            logger.error(f"Health check DB failed: {e}")
            return False


# Instance globale
db_manager = DatabaseManager()
