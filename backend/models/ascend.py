from datetime import datetime
from sqlalchemy import Column, String, DateTime, Integer, Float, Boolean, ForeignKey

from models.base import Base


class StockOpnameAscend(Base):
    """Articles ERP attendus pour un inventaire Ascend"""
    __tablename__ = 'StockOpnameAscend'

    NoSO = Column(String(50), ForeignKey('StockOpname_h.NoSO'), primary_key=True)
    ItemID = Column(Integer, primary_key=True)
    QtySystem = Column(Float, default=0.0)


class StockOpnameAscendHasil(Base):
    __tablename__ = 'StockOpnameAscendHasil'

    NoSO = Column(String(50), ForeignKey('StockOpname_h.NoSO'), primary_key=True)
    ItemID = Column(Integer, primary_key=True)
    QtyFound = Column(Float)
    QtyUsage = Column(Float)
    UsageRemark = Column(String(255))
    IsUpdateUsage = Column(Boolean, default=False)
    Username = Column(String(50))
    DateTimeScan = Column(DateTime, default=datetime.now)

    def to_dict(self):
        return {
            'NoSO': self.NoSO,
            'ItemID': self.ItemID,
            'QtyFound': self.QtyFound,
            'QtyUsage': self.QtyUsage,
            'UsageRemark': self.UsageRemark,
            'IsUpdateUsage': bool(self.IsUpdateUsage),
            'Username': self.Username,
            'DateTimeScan': self.DateTimeScan.isoformat() if self.DateTimeScan else None,
        }


# --- Tables de l'ERP Ascend (lecture seule) ---

class AscendFamily(Base):
    __tablename__ = 'Family'

    FamilyID = Column(Integer, primary_key=True)
    FamilyName = Column(String(100))


class AscendItem(Base):
    __tablename__ = 'Item'

    ItemID = Column(Integer, primary_key=True)
    ItemCode = Column(String(50))
    ItemName = Column(String(200))
    FamilyID = Column(Integer)
    UOM = Column(String(20))


class AscendItemLedger(Base):
    """Mouvements d'article : USAGE, ADJUSTMENT, SALES, PURCHASE_RETURN"""
    __tablename__ = 'ItemLedger'

    IdLedger = Column(Integer, primary_key=True, autoincrement=True)
    ItemID = Column(Integer, nullable=False)
    TrxDate = Column(DateTime, nullable=False)
    TrxType = Column(String(20), nullable=False)
    Qty = Column(Float, default=0.0)
