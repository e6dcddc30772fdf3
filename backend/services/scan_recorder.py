from datetime import datetime
from typing import Any, Dict, Optional
import logging

from sqlalchemy import insert, select, update
from sqlalchemy.exc import IntegrityError

from database import db_manager
from models.stock_opname import LogMappingLokasi, StockOpname
from services.category_registry import classify, round_weight
from services.config_service import config_service
from services.label_validator import DISCREPANCY_CODES
from utils.error_handler import (
    BatchNotFoundError, DuplicateScanError, LabelFormatError, LabelVanishedError
)

logger = logging.getLogger(__name__)


class ScanRecorder:
    """Enregistre un comptage et déplace l'étiquette, en une seule transaction.

    Étapes : lecture de la localisation courante, insertion du hasil,
    mise à jour de la localisation source, puis journal LogMappingLokasi si
    la localisation a réellement changé. Tout échec annule l'ensemble.
    L'événement de notification part après le commit, sans pouvoir faire
    échouer le comptage.
    """

    def __init__(self, db=None, publisher=None, event_name: str = None):
        self.db = db or db_manager
        self.publisher = publisher
        self.event_name = event_name or config_service.get_notification_config().get(
            'event_name', 'label_inserted'
        )

    def record_scan(self, noso: str, label: str, jmlh_sak, berat, idlokasi: int,
                    username: str, actor_id: Optional[int] = None, blok: str = None,
                    id_discrepancy: Optional[int] = None) -> Dict[str, Any]:
        label = (label or '').strip()
        if not label:
            raise LabelFormatError('Label wajib diisi')

        category = classify(label)
        if category is None:
            raise LabelFormatError(
                'Kode label tidak dikenali dalam sistem. Hanya label dengan awalan '
                'A., B., D., F., M., V., H., BB., BA., atau BF. yang valid.'
            )
        if idlokasi is None:
            raise LabelFormatError('idlokasi wajib diisi')
        if id_discrepancy is not None and id_discrepancy not in DISCREPANCY_CODES:
            raise LabelFormatError(
                f'idDiscrepancy tidak valid: {id_discrepancy}', label=label
            )

        key = category.parse(label)
        header = category.header
        hasil = category.hasil
        scanned_at = datetime.now()
        target_blok = blok.strip().upper() if blok and blok.strip() else None

        values = dict(key)
        values.update({
            'NoSO': noso,
            'Berat': berat,
            'Username': username,
            'DateTimeScan': scanned_at,
            'IdDiscrepancy': id_discrepancy,
        })
        qty_column = category.hasil_qty_column
        if qty_column:
            values[qty_column] = jmlh_sak

        db_session = self.db.get_session()
        try:
            batch_exists = db_session.execute(
                select(StockOpname.NoSO).where(StockOpname.NoSO == noso)
            ).first()
            if batch_exists is None:
                raise BatchNotFoundError('NoSO tidak ditemukan dalam sistem.', noso=noso)

            before = db_session.execute(
                select(header.c.Blok, header.c.IdLokasi).where(category.key_clause(header, key))
            ).first()
            before_blok = before.Blok if before else None
            before_lokasi = before.IdLokasi if before else None
            # Sans Blok fourni, l'étiquette reste dans son Blok actuel
            after_blok = target_blok if target_blok is not None else before_blok

            try:
                db_session.execute(insert(hasil).values(**values))
            except IntegrityError as e:
                raise DuplicateScanError(
                    'Label sudah pernah discan sebelumnya.', noso=noso, label=label
                ) from e

            moved = db_session.execute(
                update(header)
                .where(category.key_clause(header, key))
                .values(Blok=after_blok, IdLokasi=idlokasi)
            )
            if moved.rowcount == 0:
                raise LabelVanishedError(
                    f'Label {label} tidak ditemukan saat memperbarui lokasi.', noso=noso, label=label
                )

            location_changed = (before_blok, before_lokasi) != (after_blok, idlokasi)
            if location_changed:
                db_session.execute(insert(LogMappingLokasi.__table__).values(
                    IdUsername=actor_id,
                    Tgl=scanned_at,
                    NoLabel=label,
                    BeforeBlok=before_blok,
                    BeforeIdLokasi=before_lokasi,
                    AfterBlok=after_blok,
                    AfterIdLokasi=idlokasi,
                    IsSO=True,
                ))

            db_session.commit()
        except Exception as e:
            db_session.rollback()
            logger.error(f"Erreur enregistrement comptage {noso}/{label}: {e}")
            raise
        finally:
            db_session.close()

        logger.info(
            f"Comptage {noso}/{label} enregistré par {username} "
            f"({before_blok}/{before_lokasi} -> {after_blok}/{idlokasi})"
        )

        payload = {
            'noso': noso,
            'nomorLabel': label,
            'labelType': category.name,
            'labelTypeCode': category.code,
            'jmlhSak': jmlh_sak,
            'berat': round_weight(berat),
            'blok': after_blok,
            'idlokasi': idlokasi,
            'username': username,
            'idDiscrepancy': id_discrepancy,
            'timestamp': scanned_at.isoformat(),
        }
        self._notify(payload)

        return {
            'success': True,
            'message': 'Label berhasil disimpan dan lokasi diperbarui',
            'data': payload,
            'locationChanged': location_changed,
        }

    def _notify(self, payload: Dict[str, Any]):
        if self.publisher is None:
            return
        try:
            self.publisher.publish(self.event_name, payload)
        except Exception as e:
            logger.warning(f"Notification {self.event_name} non envoyée pour {payload['nomorLabel']}: {e}")
