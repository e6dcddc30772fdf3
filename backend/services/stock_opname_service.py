from datetime import date, datetime
from typing import Dict, List, Optional, Set
import logging

from sqlalchemy import func

from database import db_manager
from models.inventory import MstTutupTransaksiHarian, MstWarehouse
from models.stock_opname import StockOpname, StockOpnameWarehouse
from services.config_service import config_service

logger = logging.getLogger(__name__)


class StockOpnameService:
    """Accès aux campagnes d'inventaire (NoSO)"""

    def __init__(self, db=None):
        self.db = db or db_manager

    def _closing_cutoff(self, db_session) -> date:
        """Dernière clôture journalière, ou la date par défaut"""
        last_period = db_session.query(func.max(MstTutupTransaksiHarian.PeriodHarian)).scalar()
        if last_period:
            return last_period.date() if isinstance(last_period, datetime) else last_period
        return datetime.strptime(config_service.get_default_cutoff(), '%Y-%m-%d').date()

    def list_open_batches(self) -> List[Dict]:
        """NoSO postérieurs à la dernière clôture, du plus récent au plus ancien"""
        db_session = self.db.get_session()
        try:
            cutoff = self._closing_cutoff(db_session)
            batches = (
                db_session.query(StockOpname)
                .filter(StockOpname.Tanggal > cutoff)
                .order_by(StockOpname.NoSO.desc())
                .all()
            )
            if not batches:
                return []

            rows = (
                db_session.query(StockOpnameWarehouse.NoSO, MstWarehouse.NamaWarehouse)
                .outerjoin(MstWarehouse, StockOpnameWarehouse.IdWarehouse == MstWarehouse.IdWarehouse)
                .filter(StockOpnameWarehouse.NoSO.in_([b.NoSO for b in batches]))
                .order_by(StockOpnameWarehouse.IdWarehouse)
                .all()
            )
            warehouse_names: Dict[str, List[str]] = {}
            for noso, name in rows:
                if name:
                    warehouse_names.setdefault(noso, []).append(name)

            result = []
            for batch in batches:
                item = batch.to_dict()
                item['NamaWarehouse'] = ', '.join(warehouse_names.get(batch.NoSO, [])) or '-'
                result.append(item)
            return result
        except Exception as e:
            logger.error(f"Erreur liste des NoSO ouverts: {e}")
            raise
        finally:
            db_session.close()

    def get_batch(self, noso: str, db_session=None) -> Optional[StockOpname]:
        own_session = db_session is None
        db_session = db_session or self.db.get_session()
        try:
            return db_session.query(StockOpname).filter(StockOpname.NoSO == noso).first()
        finally:
            if own_session:
                db_session.close()

    def get_warehouse_ids(self, noso: str, db_session=None) -> Set[int]:
        own_session = db_session is None
        db_session = db_session or self.db.get_session()
        try:
            rows = (
                db_session.query(StockOpnameWarehouse.IdWarehouse)
                .filter(StockOpnameWarehouse.NoSO == noso)
                .all()
            )
            return {row[0] for row in rows}
        finally:
            if own_session:
                db_session.close()
