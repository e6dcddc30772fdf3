"""
Registre des catégories d'étiquettes.

Les dix catégories de stock de l'usine partagent la même structure
(en-tête localisé, unités éventuellement consommées, registre de
consommations partielles). Chaque catégorie est décrite une seule fois
ici ; le résolveur d'acuan, le validateur et l'enregistreur de comptage
s'appuient uniquement sur ces descripteurs.
"""
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from sqlalchemy import Integer, Table, and_, case, cast, func, null, select, true

from models import inventory
from models.stock_opname import ACUAN_TABLES, HASIL_TABLES

QTY_COUNT = 'count'   # nombre de sacs actifs
QTY_PCS = 'pcs'       # pièces, diminuées des consommations partielles
QTY_NONE = 'none'     # étiquette sans quantité


def clamp_zero(expression):
    """Ramène à zéro toute valeur négative"""
    return case((expression < 0, 0), else_=expression)


@dataclass(frozen=True)
class Category:
    code: str
    name: str
    prefix: str
    flag: str
    key_columns: Tuple[str, ...]
    header: Table
    unit: Table
    quantity_mode: str = QTY_NONE
    partial: Optional[Table] = None
    partial_keys: Tuple[str, ...] = ()
    partial_measure: Optional[str] = None
    composite: bool = False

    @property
    def acuan(self) -> Table:
        return ACUAN_TABLES[self.code]

    @property
    def hasil(self) -> Table:
        return HASIL_TABLES[self.code]

    @property
    def hasil_qty_column(self) -> Optional[str]:
        """Colonne quantité de la table hasil (JmlhSak, Pcs ou aucune)"""
        for name in ('JmlhSak', 'Pcs'):
            if name in self.hasil.c:
                return name
        return None

    def matches(self, label: str) -> bool:
        if not label.startswith(self.prefix) or len(label) <= len(self.prefix):
            return False
        if self.composite:
            head, _, tail = label.partition('-')
            return len(head) > len(self.prefix) and bool(tail) and '-' not in tail
        return '-' not in label

    def parse(self, label: str) -> Dict[str, str]:
        """Décompose une étiquette en valeurs de clé naturelle"""
        if self.composite:
            head, _, tail = label.partition('-')
            return dict(zip(self.key_columns, (head, tail)))
        return {self.key_columns[0]: label}

    def label_expression(self, table: Table):
        """Expression SQL reconstituant le numéro d'étiquette"""
        columns = [table.c[name] for name in self.key_columns]
        expression = columns[0]
        for column in columns[1:]:
            expression = expression + '-' + column
        return expression

    def key_clause(self, table: Table, key: Dict[str, str]):
        return and_(*[table.c[name] == key[name] for name in self.key_columns])

    def join_clause(self, left: Table, right):
        return and_(*[left.c[name] == right.c[name] for name in self.key_columns])

    def measure_query(self, active_only: bool = True, key: Optional[Dict[str, str]] = None):
        """Quantité et poids courants par étiquette.

        Les consommations partielles sont soustraites unité par unité et
        bornées à zéro avant l'agrégation.
        """
        unit = self.unit
        source = unit
        berat = func.coalesce(unit.c.Berat, 0)

        partial_total = None
        if self.partial is not None:
            measure_column = self.partial.c[self.partial_measure]
            ledger = (
                select(
                    *[self.partial.c[name] for name in self.partial_keys],
                    func.sum(measure_column).label('PartialTotal')
                )
                .group_by(*[self.partial.c[name] for name in self.partial_keys])
                .subquery()
            )
            source = unit.outerjoin(
                ledger,
                and_(*[unit.c[name] == ledger.c[name] for name in self.partial_keys])
            )
            partial_total = func.coalesce(ledger.c.PartialTotal, 0)

        if partial_total is not None and self.partial_measure == 'Berat':
            berat = case(
                (unit.c.IsPartial == true(), clamp_zero(berat - partial_total)),
                else_=berat
            )

        if self.quantity_mode == QTY_COUNT:
            qty = func.count()
        elif self.quantity_mode == QTY_PCS:
            pcs = func.coalesce(unit.c.Pcs, 0)
            if partial_total is not None and self.partial_measure == 'Pcs':
                pcs = case(
                    (unit.c.IsPartial == true(), clamp_zero(pcs - partial_total)),
                    else_=pcs
                )
            qty = func.sum(pcs)
        else:
            qty = cast(null(), Integer)

        key_columns = [unit.c[name] for name in self.key_columns]
        stmt = (
            select(*key_columns, qty.label('Qty'), func.sum(berat).label('Berat'))
            .select_from(source)
            .group_by(*key_columns)
        )
        if active_only:
            stmt = stmt.where(unit.c.DateUsage.is_(None))
        if key is not None:
            stmt = stmt.where(self.key_clause(unit, key))
        return stmt


def _build_categories() -> List[Category]:
    return [
        Category(
            code='bahanbaku', name='Bahan Baku', prefix='A.', flag='IsBahanBaku',
            key_columns=('NoBahanBaku', 'NoPallet'),
            header=inventory.BahanBakuPallet.__table__,
            unit=inventory.BahanBakuDetail.__table__,
            quantity_mode=QTY_COUNT,
            partial=inventory.BahanBakuPartial.__table__,
            partial_keys=('NoBahanBaku', 'NoPallet', 'NoSak'),
            partial_measure='Berat',
            composite=True,
        ),
        Category(
            code='washing', name='Washing', prefix='B.', flag='IsWashing',
            key_columns=('NoWashing',),
            header=inventory.WashingHeader.__table__,
            unit=inventory.WashingDetail.__table__,
            quantity_mode=QTY_COUNT,
        ),
        Category(
            code='broker', name='Broker', prefix='D.', flag='IsBroker',
            key_columns=('NoBroker',),
            header=inventory.BrokerHeader.__table__,
            unit=inventory.BrokerDetail.__table__,
            quantity_mode=QTY_COUNT,
            partial=inventory.BrokerPartial.__table__,
            partial_keys=('NoBroker', 'NoSak'),
            partial_measure='Berat',
        ),
        Category(
            code='crusher', name='Crusher', prefix='F.', flag='IsCrusher',
            key_columns=('NoCrusher',),
            header=inventory.Crusher.__table__,
            unit=inventory.Crusher.__table__,
        ),
        Category(
            code='bonggolan', name='Bonggolan', prefix='M.', flag='IsBonggolan',
            key_columns=('NoBonggolan',),
            header=inventory.Bonggolan.__table__,
            unit=inventory.Bonggolan.__table__,
        ),
        Category(
            code='gilingan', name='Gilingan', prefix='V.', flag='IsGilingan',
            key_columns=('NoGilingan',),
            header=inventory.Gilingan.__table__,
            unit=inventory.Gilingan.__table__,
            partial=inventory.GilinganPartial.__table__,
            partial_keys=('NoGilingan',),
            partial_measure='Berat',
        ),
        Category(
            code='mixer', name='Mixer', prefix='H.', flag='IsMixer',
            key_columns=('NoMixer',),
            header=inventory.MixerHeader.__table__,
            unit=inventory.MixerDetail.__table__,
            quantity_mode=QTY_COUNT,
            partial=inventory.MixerPartial.__table__,
            partial_keys=('NoMixer', 'NoSak'),
            partial_measure='Berat',
        ),
        Category(
            code='furniturewip', name='Furniture WIP', prefix='BB.', flag='IsFurnitureWIP',
            key_columns=('NoFurnitureWIP',),
            header=inventory.FurnitureWIP.__table__,
            unit=inventory.FurnitureWIP.__table__,
            quantity_mode=QTY_PCS,
            partial=inventory.FurnitureWIPPartial.__table__,
            partial_keys=('NoFurnitureWIP',),
            partial_measure='Pcs',
        ),
        Category(
            code='barangjadi', name='Barang Jadi', prefix='BA.', flag='IsBarangJadi',
            key_columns=('NoBJ',),
            header=inventory.BarangJadi.__table__,
            unit=inventory.BarangJadi.__table__,
            quantity_mode=QTY_PCS,
            partial=inventory.BarangJadiPartial.__table__,
            partial_keys=('NoBJ',),
            partial_measure='Pcs',
        ),
        Category(
            code='reject', name='Reject', prefix='BF.', flag='IsReject',
            key_columns=('NoReject',),
            header=inventory.Reject.__table__,
            unit=inventory.Reject.__table__,
        ),
    ]


CATEGORIES: List[Category] = _build_categories()
CATEGORIES_BY_CODE: Dict[str, Category] = {c.code: c for c in CATEGORIES}

# Les préfixes longs (BB., BA., BF.) sont testés avant les courts
_MATCH_ORDER = sorted(CATEGORIES, key=lambda c: len(c.prefix), reverse=True)


def classify(label: Optional[str]) -> Optional[Category]:
    """Retourne la catégorie d'une étiquette, ou None si non reconnue"""
    if not label:
        return None
    label = label.strip()
    for category in _MATCH_ORDER:
        if category.matches(label):
            return category
    return None


def get_category(code: str) -> Optional[Category]:
    if not code:
        return None
    return CATEGORIES_BY_CODE.get(code.strip().lower())


def round_weight(value) -> Optional[float]:
    """Poids arrondi à 2 décimales, jamais négatif"""
    if value is None:
        return None
    return round(max(float(value), 0.0), 2)
