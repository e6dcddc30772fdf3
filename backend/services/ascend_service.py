"""
Inventaire des articles gérés dans l'ERP Ascend.

Contrairement aux étiquettes de l'usine, ces articles ne sont pas validés
un par un : l'opérateur saisit des quantités par famille et chaque
article est enregistré indépendamment (upsert). L'ERP peut vivre dans une
autre base ; les données ERP et locales sont rapprochées avec pandas.
"""
from datetime import date, datetime, timedelta
from typing import Any, Dict, List
import logging

import pandas as pd
from sqlalchemy import func, select

from database import db_manager
from models.ascend import (
    AscendFamily, AscendItem, AscendItemLedger, StockOpnameAscend, StockOpnameAscendHasil
)
from models.stock_opname import StockOpname
from utils.error_handler import BatchNotFoundError, MissingFieldError

logger = logging.getLogger(__name__)

TRX_USAGE = 'USAGE'
TRX_ADJUSTMENT = 'ADJUSTMENT'
TRX_SALES = 'SALES'
TRX_PURCHASE_RETURN = 'PURCHASE_RETURN'

ITEM_COLUMNS = ['ItemID', 'ItemCode', 'ItemName', 'FamilyID', 'UOM']
ACUAN_COLUMNS = ['ItemID', 'QtySystem']
HASIL_COLUMNS = ['ItemID', 'QtyFound', 'QtyUsage', 'UsageRemark', 'IsUpdateUsage', 'Username', 'DateTimeScan']


def _frame(result, columns) -> pd.DataFrame:
    df = pd.DataFrame([dict(row._mapping) for row in result], columns=columns)
    # Clé de rapprochement toujours entière, même sur un résultat vide
    df['ItemID'] = df['ItemID'].astype('int64')
    return df


def _records(df: pd.DataFrame) -> List[Dict[str, Any]]:
    """DataFrame → liste de dicts JSON (NaN → None)"""
    if df.empty:
        return []
    cleaned = df.astype(object).where(pd.notnull(df), None)
    return cleaned.to_dict(orient='records')


class AscendService:
    def __init__(self, db=None):
        self.db = db or db_manager

    def _load_local(self, noso: str):
        """Articles attendus et comptages du NoSO"""
        db_session = self.db.get_session()
        try:
            batch = db_session.query(StockOpname).filter(StockOpname.NoSO == noso).first()
            if batch is None:
                raise BatchNotFoundError('NoSO tidak ditemukan dalam sistem.', noso=noso)

            acuan = _frame(db_session.execute(
                select(StockOpnameAscend.ItemID, StockOpnameAscend.QtySystem)
                .where(StockOpnameAscend.NoSO == noso)
            ), ACUAN_COLUMNS)
            hasil = _frame(db_session.execute(
                select(*[getattr(StockOpnameAscendHasil, c) for c in HASIL_COLUMNS])
                .where(StockOpnameAscendHasil.NoSO == noso)
            ), HASIL_COLUMNS)
            return acuan, hasil
        finally:
            db_session.close()

    def list_families(self, noso: str) -> List[Dict[str, Any]]:
        """Familles ERP présentes dans le NoSO, avec avancement du comptage"""
        acuan, hasil = self._load_local(noso)
        if acuan.empty:
            return []

        item_ids = [int(i) for i in acuan['ItemID'].tolist()]
        erp_session = self.db.get_ascend_session()
        try:
            items = _frame(erp_session.execute(
                select(AscendItem.ItemID, AscendItem.FamilyID).where(AscendItem.ItemID.in_(item_ids))
            ), ['ItemID', 'FamilyID'])
            families = pd.DataFrame(
                [dict(row._mapping) for row in erp_session.execute(
                    select(AscendFamily.FamilyID, AscendFamily.FamilyName)
                )],
                columns=['FamilyID', 'FamilyName']
            )
        finally:
            erp_session.close()

        merged = acuan.merge(items, on='ItemID', how='inner')
        merged = merged.merge(hasil[['ItemID', 'QtyFound']], on='ItemID', how='left')
        merged['IsCounted'] = merged['QtyFound'].notnull()

        summary = (
            merged.groupby('FamilyID')
            .agg(TotalItem=('ItemID', 'count'), TotalCounted=('IsCounted', 'sum'))
            .reset_index()
            .merge(families, on='FamilyID', how='left')
            .sort_values('FamilyName')
        )
        summary['TotalItem'] = summary['TotalItem'].astype(int)
        summary['TotalCounted'] = summary['TotalCounted'].astype(int)
        return _records(summary[['FamilyID', 'FamilyName', 'TotalItem', 'TotalCounted']])

    def list_family_items(self, noso: str, family_id: int, keyword: str = None) -> List[Dict[str, Any]]:
        """Articles d'une famille pour le NoSO, avec le comptage éventuel"""
        acuan, hasil = self._load_local(noso)

        stmt = select(*[getattr(AscendItem, c) for c in ITEM_COLUMNS]).where(AscendItem.FamilyID == family_id)
        if keyword and keyword.strip():
            term = keyword.strip().lower()
            stmt = stmt.where(
                func.lower(AscendItem.ItemCode).contains(term, autoescape=True)
                | func.lower(AscendItem.ItemName).contains(term, autoescape=True)
            )
        stmt = stmt.order_by(AscendItem.ItemCode)

        erp_session = self.db.get_ascend_session()
        try:
            items = _frame(erp_session.execute(stmt), ITEM_COLUMNS)
        finally:
            erp_session.close()

        merged = items.merge(acuan, on='ItemID', how='inner')
        merged = merged.merge(hasil, on='ItemID', how='left')
        merged['IsCounted'] = merged['QtyFound'].notnull()
        merged['DateTimeScan'] = merged['DateTimeScan'].map(
            lambda value: value.isoformat() if isinstance(value, datetime) and not pd.isnull(value) else None
        )
        return _records(merged)

    def save_ascend_result(self, noso: str, items: List[Dict[str, Any]], username: str) -> Dict[str, Any]:
        """Upsert article par article ; un échec n'annule pas les autres"""
        if not isinstance(items, list):
            raise MissingFieldError('items harus berupa array')
        self._require_batch(noso)

        saved, skipped, failed = 0, 0, []
        for item in items:
            item_id = item.get('itemId') if isinstance(item, dict) else None
            if item_id is None:
                skipped += 1
                continue
            if item.get('qtyFound') is None:
                skipped += 1
                continue
            try:
                self._upsert(noso, item, username)
                saved += 1
            except Exception as e:
                logger.error(f"Erreur upsert Ascend {noso}/{item_id}: {e}")
                failed.append({'itemId': item_id, 'error': type(e).__name__})

        logger.info(f"Ascend {noso}: {saved} enregistré(s), {skipped} ignoré(s), {len(failed)} échec(s)")
        return {
            'success': len(failed) == 0,
            'message': f'{saved} item berhasil disimpan' if not failed
            else f'{saved} item disimpan, {len(failed)} gagal',
            'data': {'saved': saved, 'skipped': skipped, 'failed': failed},
        }

    def _require_batch(self, noso: str):
        db_session = self.db.get_session()
        try:
            if db_session.get(StockOpname, noso) is None:
                raise BatchNotFoundError('NoSO tidak ditemukan dalam sistem.', noso=noso)
        finally:
            db_session.close()

    def _upsert(self, noso: str, item: Dict[str, Any], username: str):
        db_session = self.db.get_session()
        try:
            item_id = int(item['itemId'])
            row = db_session.get(StockOpnameAscendHasil, (noso, item_id))
            if row is None:
                row = StockOpnameAscendHasil(NoSO=noso, ItemID=item_id)
                db_session.add(row)

            row.QtyFound = float(item['qtyFound'])
            row.QtyUsage = float(item['qtyUsage']) if item.get('qtyUsage') is not None else None
            row.UsageRemark = item.get('usageRemark')
            row.IsUpdateUsage = bool(item.get('isUpdateUsage', False))
            row.Username = username
            row.DateTimeScan = datetime.now()
            db_session.commit()
        except Exception:
            db_session.rollback()
            raise
        finally:
            db_session.close()

    def fetch_usage_since(self, item_id: int, since: date) -> Dict[str, Any]:
        """Consommation nette après la date de l'inventaire :
        usage - ajustements - ventes - retours achat.

        Seuls les mouvements des jours suivant la date comptent : une ligne
        du jour même, quelle que soit son heure, est exclue.
        """
        if isinstance(since, datetime):
            since = since.date()
        first_day = datetime.combine(since + timedelta(days=1), datetime.min.time())

        erp_session = self.db.get_ascend_session()
        try:
            rows = erp_session.execute(
                select(AscendItemLedger.TrxType, func.coalesce(func.sum(AscendItemLedger.Qty), 0))
                .where(AscendItemLedger.ItemID == item_id, AscendItemLedger.TrxDate >= first_day)
                .group_by(AscendItemLedger.TrxType)
            ).all()
        finally:
            erp_session.close()

        totals = {trx_type: float(total or 0) for trx_type, total in rows}
        usage = totals.get(TRX_USAGE, 0.0)
        adjustments = totals.get(TRX_ADJUSTMENT, 0.0)
        sales = totals.get(TRX_SALES, 0.0)
        purchase_returns = totals.get(TRX_PURCHASE_RETURN, 0.0)

        return {
            'itemId': item_id,
            'tglSO': since.isoformat(),
            'usage': usage,
            'adjustments': adjustments,
            'sales': sales,
            'purchaseReturns': purchase_returns,
            'qtyUsage': round(usage - adjustments - sales - purchase_returns, 2),
        }

    def delete_ascend_result(self, noso: str, item_id: int) -> Dict[str, Any]:
        db_session = self.db.get_session()
        try:
            deleted = (
                db_session.query(StockOpnameAscendHasil)
                .filter(StockOpnameAscendHasil.NoSO == noso, StockOpnameAscendHasil.ItemID == item_id)
                .delete(synchronize_session=False)
            )
            db_session.commit()
        except Exception as e:
            db_session.rollback()
            logger.error(f"Erreur suppression Ascend {noso}/{item_id}: {e}")
            raise
        finally:
            db_session.close()

        if not deleted:
            return {'success': False, 'message': f'Item {item_id} belum pernah disimpan untuk NoSO {noso}'}
        return {'success': True, 'message': f'Item {item_id} berhasil dihapus'}
