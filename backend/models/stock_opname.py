from datetime import datetime
from sqlalchemy import (
    Column, String, DateTime, Integer, Float, Boolean, Date, Table, ForeignKey
)

from models.base import Base


class StockOpname(Base):
    """Campagne d'inventaire physique (NoSO)"""
    __tablename__ = 'StockOpname_h'

    NoSO = Column(String(50), primary_key=True)
    Tanggal = Column(Date, nullable=False)

    IsBahanBaku = Column(Boolean, default=False)
    IsWashing = Column(Boolean, default=False)
    IsBroker = Column(Boolean, default=False)
    IsCrusher = Column(Boolean, default=False)
    IsBonggolan = Column(Boolean, default=False)
    IsGilingan = Column(Boolean, default=False)
    IsMixer = Column(Boolean, default=False)
    IsFurnitureWIP = Column(Boolean, default=False)
    IsBarangJadi = Column(Boolean, default=False)
    IsReject = Column(Boolean, default=False)
    IsAscend = Column(Boolean, default=False)

    def to_dict(self):
        return {
            'NoSO': self.NoSO,
            'Tanggal': self.Tanggal.isoformat() if self.Tanggal else None,
            'IsBahanBaku': bool(self.IsBahanBaku),
            'IsWashing': bool(self.IsWashing),
            'IsBroker': bool(self.IsBroker),
            'IsCrusher': bool(self.IsCrusher),
            'IsBonggolan': bool(self.IsBonggolan),
            'IsGilingan': bool(self.IsGilingan),
            'IsMixer': bool(self.IsMixer),
            'IsFurnitureWIP': bool(self.IsFurnitureWIP),
            'IsBarangJadi': bool(self.IsBarangJadi),
            'IsReject': bool(self.IsReject),
            'IsAscend': bool(self.IsAscend),
        }


class StockOpnameWarehouse(Base):
    __tablename__ = 'StockOpname_h_WarehouseID'

    NoSO = Column(String(50), ForeignKey('StockOpname_h.NoSO'), primary_key=True)
    IdWarehouse = Column(Integer, primary_key=True)


class LogMappingLokasi(Base):
    """Journal des déplacements d'étiquettes (ajout seulement)"""
    __tablename__ = 'LogMappingLokasi'

    IdLog = Column(Integer, primary_key=True, autoincrement=True)
    IdUsername = Column(Integer)
    Tgl = Column(DateTime, default=datetime.now)
    NoLabel = Column(String(60), nullable=False)
    BeforeBlok = Column(String(20))
    BeforeIdLokasi = Column(Integer)
    AfterBlok = Column(String(20))
    AfterIdLokasi = Column(Integer)
    IsSO = Column(Boolean, default=False)


def _key_columns(key_columns, primary_key=True):
    return [Column(name, String(50), primary_key=primary_key) for name in key_columns]


def build_acuan_table(suffix: str, key_columns) -> Table:
    """Table StockOpname<suffix> : étiquettes attendues pour un NoSO

    Seules les clés sont gardées ; quantité, poids et localisation sont
    lus en direct dans les tables sources.
    """
    columns = [Column('NoSO', String(50), ForeignKey('StockOpname_h.NoSO'), primary_key=True)]
    columns += _key_columns(key_columns)
    return Table(f'StockOpname{suffix}', Base.metadata, *columns)


def build_hasil_table(suffix: str, key_columns, qty_column=None) -> Table:
    """Table StockOpnameHasil<suffix> : une ligne par (NoSO, étiquette)

    La clé primaire porte exactement (NoSO, clé de l'étiquette) : un second
    comptage concurrent échoue au niveau de la base.
    """
    columns = [Column('NoSO', String(50), ForeignKey('StockOpname_h.NoSO'), primary_key=True)]
    columns += _key_columns(key_columns)
    if qty_column:
        columns.append(Column(qty_column, Integer))
    columns += [
        Column('Berat', Float),
        Column('Username', String(50)),
        Column('DateTimeScan', DateTime),
        Column('IdDiscrepancy', Integer),
    ]
    return Table(f'StockOpnameHasil{suffix}', Base.metadata, *columns)


# (suffixe, colonnes clés, colonne quantité)
LINKED_TABLES = {
    'bahanbaku': ('BahanBaku', ('NoBahanBaku', 'NoPallet'), 'JmlhSak'),
    'washing': ('Washing', ('NoWashing',), 'JmlhSak'),
    'broker': ('Broker', ('NoBroker',), 'JmlhSak'),
    'crusher': ('Crusher', ('NoCrusher',), None),
    'bonggolan': ('Bonggolan', ('NoBonggolan',), None),
    'gilingan': ('Gilingan', ('NoGilingan',), None),
    'mixer': ('Mixer', ('NoMixer',), 'JmlhSak'),
    'furniturewip': ('FurnitureWIP', ('NoFurnitureWIP',), 'Pcs'),
    'barangjadi': ('BarangJadi', ('NoBJ',), 'Pcs'),
    'reject': ('Reject', ('NoReject',), None),
}

ACUAN_TABLES = {
    code: build_acuan_table(suffix, keys)
    for code, (suffix, keys, _) in LINKED_TABLES.items()
}

HASIL_TABLES = {
    code: build_hasil_table(suffix, keys, qty)
    for code, (suffix, keys, qty) in LINKED_TABLES.items()
}
