import math
from typing import Dict, Optional
import logging

from sqlalchemy import Integer, cast, delete, func, literal, null, select, union_all

from database import db_manager
from services.acuan_service import resolve_categories
from services.category_registry import Category, classify, round_weight
from services.query_builder import LabelFilter
from utils.error_handler import LabelFormatError

logger = logging.getLogger(__name__)


class HasilService:
    """Consultation et annulation des comptages enregistrés"""

    def __init__(self, db=None):
        self.db = db or db_manager

    def _category_select(self, category: Category, noso: str, filters: LabelFilter):
        hasil = category.hasil
        header = category.header
        label = category.label_expression(hasil)
        qty_column = category.hasil_qty_column

        stmt = (
            select(
                label.label('NomorLabel'),
                literal(category.name).label('LabelType'),
                literal(category.code).label('LabelTypeCode'),
                (hasil.c[qty_column] if qty_column else cast(null(), Integer)).label('JmlhSak'),
                hasil.c.Berat.label('Berat'),
                header.c.Blok.label('Blok'),
                header.c.IdLokasi.label('IdLokasi'),
                hasil.c.Username.label('Username'),
                hasil.c.DateTimeScan.label('DateTimeScan'),
                hasil.c.IdDiscrepancy.label('IdDiscrepancy'),
            )
            .select_from(hasil.outerjoin(header, category.join_clause(hasil, header)))
            .where(hasil.c.NoSO == noso)
        )
        return filters.apply(stmt, label, header, username_column=hasil.c.Username)

    def list_hasil(self, noso: str, page: int = 1, page_size: int = 20,
                   filter_by: Optional[str] = None, filters: LabelFilter = None) -> Dict:
        """Comptages d'un NoSO, du plus récent au plus ancien"""
        categories = resolve_categories(filter_by)
        filters = filters or LabelFilter()

        selects = [self._category_select(c, noso, filters) for c in categories]
        rows_query = (selects[0] if len(selects) == 1 else union_all(*selects)).subquery('hasil')

        page_stmt = (
            select(rows_query)
            .order_by(rows_query.c.DateTimeScan.desc(), rows_query.c.NomorLabel.desc())
            .limit(page_size)
            .offset((page - 1) * page_size)
        )
        totals_stmt = select(
            func.count().label('total'),
            func.coalesce(func.sum(rows_query.c.JmlhSak), 0).label('qty'),
            func.coalesce(func.sum(rows_query.c.Berat), 0).label('berat'),
        ).select_from(rows_query)

        db_session = self.db.get_session()
        try:
            rows = [dict(r._mapping) for r in db_session.execute(page_stmt)]
            totals = db_session.execute(totals_stmt).one()
        except Exception as e:
            logger.error(f"Erreur liste hasil {noso}: {e}")
            raise
        finally:
            db_session.close()

        data = []
        for row in rows:
            scanned_at = row['DateTimeScan']
            row['DateTimeScan'] = scanned_at.isoformat() if scanned_at else '-'
            row['Username'] = row['Username'] or '-'
            row['Berat'] = round_weight(row['Berat'])
            data.append(row)

        total = int(totals.total or 0)
        return {
            'success': True,
            'message': 'OK',
            'data': data,
            'hasData': len(data) > 0,
            'currentPage': page,
            'pageSize': page_size,
            'totalData': total,
            'totalPages': math.ceil(total / page_size) if page_size else 0,
            'totalQty': int(totals.qty or 0),
            'totalBerat': round_weight(totals.berat),
        }

    def delete_hasil(self, noso: str, label: str) -> Dict:
        """Annule le comptage d'une étiquette (catégorie déduite du préfixe)"""
        if not label:
            raise LabelFormatError('nomorLabel wajib diisi')

        category = classify(label)
        if category is None:
            return {'success': False, 'message': 'NomorLabel tidak ditemukan dalam data stock opname'}

        key = category.parse(label.strip())
        hasil = category.hasil

        db_session = self.db.get_session()
        try:
            result = db_session.execute(
                delete(hasil).where(hasil.c.NoSO == noso, category.key_clause(hasil, key))
            )
            db_session.commit()
        except Exception as e:
            db_session.rollback()
            logger.error(f"Erreur suppression hasil {noso}/{label}: {e}")
            raise
        finally:
            db_session.close()

        if result.rowcount == 0:
            return {'success': False, 'message': 'NomorLabel tidak ditemukan dalam data stock opname'}

        logger.info(f"Hasil supprimé: {noso}/{label} ({category.code})")
        return {
            'success': True,
            'message': f"Label {label} berhasil dihapus dari tipe '{category.name}'"
        }
