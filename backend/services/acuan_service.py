"""
Résolution de l'acuan : étiquettes attendues pour un NoSO et pas encore
comptées.

Trois lectures indépendantes sont lancées en parallèle, chacune sur sa
propre session : la page demandée, les totaux filtrés (étiquettes encore à
compter) et les totaux globaux (tout l'attendu, comptage compris).
"""
import math
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Optional
import logging

from sqlalchemy import Integer, cast, exists, func, literal, null, select, union_all

from config import config
from database import db_manager
from services.category_registry import CATEGORIES, QTY_NONE, Category, get_category, round_weight
from services.query_builder import LabelFilter
from utils.error_handler import LabelFormatError

logger = logging.getLogger(__name__)


def resolve_categories(filter_by: Optional[str]) -> List[Category]:
    """Catégories visées par filterBy ('all' ou un code)"""
    if not filter_by or filter_by.strip().lower() == 'all':
        return list(CATEGORIES)
    category = get_category(filter_by)
    if category is None:
        raise LabelFormatError(f"filterBy tidak valid: {filter_by}")
    return [category]


class AcuanService:
    def __init__(self, db=None, max_workers: int = None):
        self.db = db or db_manager
        self.max_workers = max_workers or config.AGGREGATE_WORKERS

    def _category_select(self, category: Category, noso: str, filters: LabelFilter,
                         pending_only: bool):
        acuan = category.acuan
        header = category.header
        measure = category.measure_query(active_only=True).subquery()
        label = category.label_expression(acuan)

        source = (
            acuan
            .join(header, category.join_clause(acuan, header))
            .outerjoin(measure, category.join_clause(acuan, measure))
        )

        if category.quantity_mode == QTY_NONE:
            qty = cast(null(), Integer)
        else:
            qty = func.coalesce(measure.c.Qty, 0)

        stmt = (
            select(
                label.label('NomorLabel'),
                literal(category.name).label('LabelType'),
                literal(category.code).label('LabelTypeCode'),
                qty.label('JmlhSak'),
                func.coalesce(measure.c.Berat, 0).label('Berat'),
                header.c.Blok.label('Blok'),
                header.c.IdLokasi.label('IdLokasi'),
            )
            .select_from(source)
            .where(acuan.c.NoSO == noso)
        )
        stmt = filters.apply(stmt, label, header)

        if pending_only:
            hasil = category.hasil
            stmt = stmt.where(~exists().where(
                hasil.c.NoSO == acuan.c.NoSO,
                category.join_clause(hasil, acuan)
            ))
        return stmt

    def _union(self, categories, noso, filters, pending_only):
        selects = [self._category_select(c, noso, filters, pending_only) for c in categories]
        if len(selects) == 1:
            return selects[0].subquery('acuan')
        return union_all(*selects).subquery('acuan')

    def _fetch_page(self, categories, noso, filters, page, page_size) -> List[Dict]:
        rows_query = self._union(categories, noso, filters, pending_only=True)
        stmt = (
            select(rows_query)
            .order_by(rows_query.c.NomorLabel.desc())
            .limit(page_size)
            .offset((page - 1) * page_size)
        )
        return self._run(lambda s: [dict(r._mapping) for r in s.execute(stmt)])

    def _fetch_totals(self, categories, noso, filters, pending_only) -> Dict:
        rows_query = self._union(categories, noso, filters, pending_only)
        stmt = select(
            func.count().label('total'),
            func.coalesce(func.sum(rows_query.c.JmlhSak), 0).label('qty'),
            func.coalesce(func.sum(rows_query.c.Berat), 0).label('berat'),
        ).select_from(rows_query)
        return self._run(lambda s: dict(s.execute(stmt).one()._mapping))

    def _run(self, work):
        """Exécute une lecture sur la session du thread courant"""
        db_session = self.db.get_session()
        try:
            return work(db_session)
        finally:
            db_session.close()
            self.db.close_session()

    def resolve_acuan(self, noso: str, page: int = 1, page_size: int = 20,
                      filter_by: Optional[str] = None, filters: LabelFilter = None) -> Dict:
        """Étiquettes restant à compter pour un NoSO, paginées, avec totaux"""
        categories = resolve_categories(filter_by)
        filters = filters or LabelFilter()

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            page_future = executor.submit(self._fetch_page, categories, noso, filters, page, page_size)
            pending_future = executor.submit(self._fetch_totals, categories, noso, filters, True)
            global_future = executor.submit(self._fetch_totals, categories, noso, filters, False)

            rows = page_future.result()
            pending = pending_future.result()
            overall = global_future.result()

        data = []
        for row in rows:
            row['Berat'] = round_weight(row['Berat'])
            data.append(row)

        total = int(pending['total'] or 0)
        logger.info(f"Acuan {noso} ({filter_by or 'all'}): {total} étiquette(s) restantes")

        return {
            'success': True,
            'message': 'OK',
            'data': data,
            'hasData': len(data) > 0,
            'currentPage': page,
            'pageSize': page_size,
            'totalData': total,
            'totalPages': math.ceil(total / page_size) if page_size else 0,
            'totalQty': int(pending['qty'] or 0),
            'totalBerat': round_weight(pending['berat']),
            'totalLabelGlobal': int(overall['total'] or 0),
            'totalQtyGlobal': int(overall['qty'] or 0),
            'totalBeratGlobal': round_weight(overall['berat']),
        }
