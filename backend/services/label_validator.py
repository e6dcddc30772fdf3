"""
Validation d'une étiquette scannée avant enregistrement.

Les contrôles s'enchaînent dans un ordre fixe et le premier échec
termine l'appel :

1. format reconnu (préfixe / tiret) ;
2. pas déjà comptée pour ce NoSO ;
3. NoSO existant ;
4. catégorie couverte par le NoSO ;
5. entrepôt déduit du Blok courant (MstBlok) ;
6. présence dans l'acuan avec du stock actif, sinon repli sur le stock
   actif hors acuan (écart 3) puis sur l'historique (écart 1) ;
7. entrepôt couvert par le NoSO (écart 2) ;
8. Blok / IdLokasi attendus par l'opérateur.

Les rejets métier ne sont pas des exceptions : le résultat porte le motif
et le code d'écart que l'interface exploite. La validation ne fait que
lire, deux appels successifs donnent le même résultat.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
import logging

from sqlalchemy import exists, select

from database import db_manager
from models.inventory import (
    BrokerProduksi, BrokerProduksiOutputBonggolan, InjectProduksi,
    InjectProduksiOutputBonggolan, MstBlok, MstMesin, MstOperator
)
from services.category_registry import Category, classify, round_weight
from services.stock_opname_service import StockOpnameService
from utils.error_handler import LabelFormatError

logger = logging.getLogger(__name__)

DISCREPANCY_PROCESSED = 1
DISCREPANCY_WAREHOUSE = 2
DISCREPANCY_NOT_IN_ACUAN = 3

# Codes acceptés à l'enregistrement (0 ou None : aucun écart)
DISCREPANCY_CODES = (0, DISCREPANCY_PROCESSED, DISCREPANCY_WAREHOUSE, DISCREPANCY_NOT_IN_ACUAN)


@dataclass
class ValidationResult:
    noso: str
    label: str
    username: str
    success: bool = False
    message: str = ''
    category: Optional[Category] = None
    parsed: Dict[str, str] = field(default_factory=dict)
    is_valid_format: bool = False
    is_valid_category: bool = False
    is_valid_warehouse: bool = False
    is_duplicate: bool = False
    found_in_stock_opname: bool = False
    can_insert: bool = False
    id_warehouse: Optional[int] = None
    id_discrepancy: Optional[int] = None
    jmlh_sak: Optional[int] = None
    berat: Optional[float] = None
    blok: Optional[str] = None
    id_lokasi: Optional[int] = None
    mesin_info: List[Dict[str, Any]] = field(default_factory=list)

    def set_detail(self, jmlh_sak, berat, blok, id_lokasi):
        self.jmlh_sak = int(jmlh_sak) if jmlh_sak is not None else None
        self.berat = round_weight(berat)
        self.blok = blok
        self.id_lokasi = id_lokasi

    def to_dict(self) -> Dict[str, Any]:
        return {
            'success': self.success,
            'message': self.message,
            'label': self.label,
            'labelType': self.category.name if self.category else '',
            'labelTypeCode': self.category.code if self.category else '',
            'parsed': self.parsed,
            'noso': self.noso,
            'username': self.username,
            'isValidFormat': self.is_valid_format,
            'isValidCategory': self.is_valid_category,
            'isValidWarehouse': self.is_valid_warehouse,
            'isDuplicate': self.is_duplicate,
            'foundInStockOpname': self.found_in_stock_opname,
            'canInsert': self.can_insert,
            'idWarehouse': self.id_warehouse,
            'idDiscrepancy': self.id_discrepancy,
            'jmlhSak': self.jmlh_sak,
            'berat': self.berat,
            'blok': self.blok,
            'idLokasi': self.id_lokasi,
            'detail': {
                'JmlhSak': self.jmlh_sak,
                'Berat': self.berat,
                'Blok': self.blok,
                'IdLokasi': self.id_lokasi,
            },
            'mesinInfo': self.mesin_info,
        }


def _has_stock(measure) -> bool:
    if measure is None:
        return False
    return (measure.Qty or 0) > 0 or (measure.Berat or 0) > 0


def _normalize_blok(value) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip().upper()
    return value or None


class LabelValidator:
    def __init__(self, db=None, stock_opname_service: StockOpnameService = None):
        self.db = db or db_manager
        self.stock_opname_service = stock_opname_service or StockOpnameService(self.db)

    def validate(self, noso: str, label: str, username: str,
                 blok_hint: str = None, idlokasi_hint: int = None) -> ValidationResult:
        label = (label or '').strip()
        if not label:
            raise LabelFormatError('Label wajib diisi')

        result = ValidationResult(noso=noso, label=label, username=username)

        category = classify(label)
        if category is None:
            result.message = (
                'Kode label tidak dikenali. Hanya A.(dengan -), B., D., F., M., V., H., '
                'BB., BA., atau BF. yang valid.'
            )
            return result

        result.is_valid_format = True
        result.category = category
        result.parsed = category.parse(label)

        db_session = self.db.get_session()
        try:
            self._evaluate(db_session, result, category, blok_hint, idlokasi_hint)
        except Exception as e:
            logger.error(f"Erreur validation {noso}/{label}: {e}")
            raise
        finally:
            db_session.close()

        logger.info(
            f"Validation {noso}/{label} par {username}: success={result.success} "
            f"discrepancy={result.id_discrepancy} message={result.message}"
        )
        return result

    def _evaluate(self, db_session, result: ValidationResult, category: Category,
                  blok_hint, idlokasi_hint):
        key = result.parsed
        noso = result.noso

        hasil = category.hasil
        already_counted = db_session.execute(
            select(exists().where(hasil.c.NoSO == noso, category.key_clause(hasil, key)))
        ).scalar()
        if already_counted:
            result.is_duplicate = True
            result.message = 'Label sudah pernah discan sebelumnya.'
            return

        batch = self.stock_opname_service.get_batch(noso, db_session=db_session)
        if batch is None:
            result.message = 'NoSO tidak ditemukan dalam sistem.'
            return

        header = category.header
        location = db_session.execute(
            select(header.c.Blok, header.c.IdLokasi).where(category.key_clause(header, key))
        ).first()
        current_blok = location.Blok if location else None
        current_lokasi = location.IdLokasi if location else None

        if not getattr(batch, category.flag):
            original = db_session.execute(category.measure_query(active_only=False, key=key)).first()
            result.set_detail(
                original.Qty if original else None,
                original.Berat if original else None,
                current_blok, current_lokasi
            )
            result.message = f'Kategori {category.name} tidak sesuai dengan NoSO ini.'
            return
        result.is_valid_category = True

        if current_blok:
            result.id_warehouse = db_session.execute(
                select(MstBlok.IdWarehouse).where(MstBlok.Blok == _normalize_blok(current_blok))
            ).scalar()
        warehouses = self.stock_opname_service.get_warehouse_ids(noso, db_session=db_session)
        result.is_valid_warehouse = result.id_warehouse is not None and result.id_warehouse in warehouses

        acuan = category.acuan
        in_acuan = db_session.execute(
            select(exists().where(acuan.c.NoSO == noso, category.key_clause(acuan, key)))
        ).scalar()
        active = db_session.execute(category.measure_query(active_only=True, key=key)).first()

        if not (in_acuan and _has_stock(active)):
            if _has_stock(active):
                result.id_discrepancy = DISCREPANCY_NOT_IN_ACUAN
                result.set_detail(active.Qty, active.Berat, current_blok, current_lokasi)
                result.message = 'Item tidak masuk dalam daftar Stock Opname.'
                return

            original = db_session.execute(category.measure_query(active_only=False, key=key)).first()
            if original is not None:
                result.id_discrepancy = DISCREPANCY_PROCESSED
                result.set_detail(0 if original.Qty is not None else None, 0, current_blok, current_lokasi)
                result.message = 'Item telah diproses.'
                return

            result.message = 'Label tidak ditemukan di sistem.'
            return

        result.found_in_stock_opname = True
        result.set_detail(active.Qty, active.Berat, current_blok, current_lokasi)

        if not result.is_valid_warehouse:
            result.id_discrepancy = DISCREPANCY_WAREHOUSE
            result.message = (
                f'Label ini tidak tersedia pada warehouse NoSO ini '
                f'(IdWarehouse: {result.id_warehouse if result.id_warehouse is not None else "-"}).'
            )
            return

        expected_blok = _normalize_blok(blok_hint)
        blok_mismatch = expected_blok is not None and expected_blok != _normalize_blok(current_blok)
        lokasi_mismatch = idlokasi_hint is not None and idlokasi_hint != current_lokasi
        if blok_mismatch or lokasi_mismatch:
            result.message = (
                f'Lokasi label tidak sesuai. Label berada di Blok {current_blok or "-"}, '
                f'IdLokasi {current_lokasi if current_lokasi is not None else "-"}.'
            )
            return

        if category.code == 'bonggolan':
            result.mesin_info = self._producer_info(db_session, key['NoBonggolan'])

        result.success = True
        result.can_insert = True
        result.message = 'Label valid dan siap disimpan.'

    def _producer_info(self, db_session, no_bonggolan: str) -> List[Dict[str, Any]]:
        """Machines et opérateurs ayant produit un bonggolan"""
        chains = (
            ('broker', BrokerProduksiOutputBonggolan, BrokerProduksi),
            ('inject', InjectProduksiOutputBonggolan, InjectProduksi),
        )
        info = []
        for source, output, production in chains:
            stmt = (
                select(output.NoProduksi, MstMesin.NamaMesin, MstOperator.NamaOperator)
                .join(production, production.NoProduksi == output.NoProduksi)
                .outerjoin(MstMesin, MstMesin.IdMesin == production.IdMesin)
                .outerjoin(MstOperator, MstOperator.IdOperator == production.IdOperator)
                .where(output.NoBonggolan == no_bonggolan)
                .order_by(output.NoProduksi)
            )
            for row in db_session.execute(stmt):
                info.append({
                    'source': source,
                    'noProduksi': row.NoProduksi,
                    'namaMesin': row.NamaMesin,
                    'namaOperator': row.NamaOperator,
                })
        return info
