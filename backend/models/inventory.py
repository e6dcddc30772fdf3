"""
Tables sources de l'usine (schéma historique).

Chaque catégorie possède une table d'en-tête portant la localisation
(Blok / IdLokasi) et, selon le cas, une table de détail par sac et un
registre des consommations partielles. Ces tables sont alimentées par les
modules de production ; ce service ne fait que les lire et déplacer les
étiquettes.
"""
from sqlalchemy import Column, String, DateTime, Integer, Float, Boolean, Date

from models.base import Base


# --- Bahan baku (matière première, clé composite) ---

class BahanBakuPallet(Base):
    __tablename__ = 'BahanBakuPallet_h'

    NoBahanBaku = Column(String(50), primary_key=True)
    NoPallet = Column(String(10), primary_key=True)
    Blok = Column(String(20))
    IdLokasi = Column(Integer)


class BahanBakuDetail(Base):
    __tablename__ = 'BahanBaku_d'

    NoBahanBaku = Column(String(50), primary_key=True)
    NoPallet = Column(String(10), primary_key=True)
    NoSak = Column(Integer, primary_key=True)
    Berat = Column(Float, default=0.0)
    IsPartial = Column(Boolean, default=False)
    DateUsage = Column(DateTime)


class BahanBakuPartial(Base):
    __tablename__ = 'BahanBakuPartial'

    IdPartial = Column(Integer, primary_key=True, autoincrement=True)
    NoBahanBaku = Column(String(50), nullable=False)
    NoPallet = Column(String(10), nullable=False)
    NoSak = Column(Integer, nullable=False)
    Berat = Column(Float, default=0.0)


# --- Washing ---

class WashingHeader(Base):
    __tablename__ = 'Washing_h'

    NoWashing = Column(String(50), primary_key=True)
    Blok = Column(String(20))
    IdLokasi = Column(Integer)


class WashingDetail(Base):
    __tablename__ = 'Washing_d'

    NoWashing = Column(String(50), primary_key=True)
    NoSak = Column(Integer, primary_key=True)
    Berat = Column(Float, default=0.0)
    DateUsage = Column(DateTime)


# --- Broker ---

class BrokerHeader(Base):
    __tablename__ = 'Broker_h'

    NoBroker = Column(String(50), primary_key=True)
    Blok = Column(String(20))
    IdLokasi = Column(Integer)


class BrokerDetail(Base):
    __tablename__ = 'Broker_d'

    NoBroker = Column(String(50), primary_key=True)
    NoSak = Column(Integer, primary_key=True)
    Berat = Column(Float, default=0.0)
    IsPartial = Column(Boolean, default=False)
    DateUsage = Column(DateTime)


class BrokerPartial(Base):
    __tablename__ = 'BrokerPartial'

    IdPartial = Column(Integer, primary_key=True, autoincrement=True)
    NoBroker = Column(String(50), nullable=False)
    NoSak = Column(Integer, nullable=False)
    Berat = Column(Float, default=0.0)


# --- Étiquettes sans détail (une ligne = une unité) ---

class Crusher(Base):
    __tablename__ = 'Crusher'

    NoCrusher = Column(String(50), primary_key=True)
    Berat = Column(Float, default=0.0)
    Blok = Column(String(20))
    IdLokasi = Column(Integer)
    DateUsage = Column(DateTime)


class Bonggolan(Base):
    __tablename__ = 'Bonggolan'

    NoBonggolan = Column(String(50), primary_key=True)
    Berat = Column(Float, default=0.0)
    Blok = Column(String(20))
    IdLokasi = Column(Integer)
    DateUsage = Column(DateTime)


class Gilingan(Base):
    __tablename__ = 'Gilingan'

    NoGilingan = Column(String(50), primary_key=True)
    Berat = Column(Float, default=0.0)
    IsPartial = Column(Boolean, default=False)
    Blok = Column(String(20))
    IdLokasi = Column(Integer)
    DateUsage = Column(DateTime)


class GilinganPartial(Base):
    __tablename__ = 'GilinganPartial'

    IdPartial = Column(Integer, primary_key=True, autoincrement=True)
    NoGilingan = Column(String(50), nullable=False)
    Berat = Column(Float, default=0.0)


# --- Mixer ---

class MixerHeader(Base):
    __tablename__ = 'Mixer_h'

    NoMixer = Column(String(50), primary_key=True)
    Blok = Column(String(20))
    IdLokasi = Column(Integer)


class MixerDetail(Base):
    __tablename__ = 'Mixer_d'

    NoMixer = Column(String(50), primary_key=True)
    NoSak = Column(Integer, primary_key=True)
    Berat = Column(Float, default=0.0)
    IsPartial = Column(Boolean, default=False)
    DateUsage = Column(DateTime)


class MixerPartial(Base):
    __tablename__ = 'MixerPartial'

    IdPartial = Column(Integer, primary_key=True, autoincrement=True)
    NoMixer = Column(String(50), nullable=False)
    NoSak = Column(Integer, nullable=False)
    Berat = Column(Float, default=0.0)


# --- Produits comptés en pièces ---

class FurnitureWIP(Base):
    __tablename__ = 'FurnitureWIP'

    NoFurnitureWIP = Column(String(50), primary_key=True)
    Pcs = Column(Integer, default=0)
    Berat = Column(Float, default=0.0)
    IsPartial = Column(Boolean, default=False)
    Blok = Column(String(20))
    IdLokasi = Column(Integer)
    DateUsage = Column(DateTime)


class FurnitureWIPPartial(Base):
    __tablename__ = 'FurnitureWIPPartial'

    IdPartial = Column(Integer, primary_key=True, autoincrement=True)
    NoFurnitureWIP = Column(String(50), nullable=False)
    Pcs = Column(Integer, default=0)


class BarangJadi(Base):
    __tablename__ = 'BarangJadi'

    NoBJ = Column(String(50), primary_key=True)
    Pcs = Column(Integer, default=0)
    Berat = Column(Float, default=0.0)
    IsPartial = Column(Boolean, default=False)
    Blok = Column(String(20))
    IdLokasi = Column(Integer)
    DateUsage = Column(DateTime)


class BarangJadiPartial(Base):
    __tablename__ = 'BarangJadiPartial'

    IdPartial = Column(Integer, primary_key=True, autoincrement=True)
    NoBJ = Column(String(50), nullable=False)
    Pcs = Column(Integer, default=0)


class Reject(Base):
    __tablename__ = 'RejectV2'

    NoReject = Column(String(50), primary_key=True)
    Berat = Column(Float, default=0.0)
    Blok = Column(String(20))
    IdLokasi = Column(Integer)
    DateUsage = Column(DateTime)


# --- Référentiels ---

class MstBlok(Base):
    __tablename__ = 'MstBlok'

    Blok = Column(String(20), primary_key=True)
    IdWarehouse = Column(Integer)


class MstWarehouse(Base):
    __tablename__ = 'MstWarehouse'

    IdWarehouse = Column(Integer, primary_key=True)
    NamaWarehouse = Column(String(100))


class MstTutupTransaksiHarian(Base):
    """Clôtures journalières : aucun inventaire n'est ouvert avant la dernière"""
    __tablename__ = 'MstTutupTransaksiHarian'

    Id = Column(Integer, primary_key=True, autoincrement=True)
    PeriodHarian = Column(Date, nullable=False)


class MstMesin(Base):
    __tablename__ = 'MstMesin'

    IdMesin = Column(Integer, primary_key=True)
    NamaMesin = Column(String(100))


class MstOperator(Base):
    __tablename__ = 'MstOperator'

    IdOperator = Column(Integer, primary_key=True)
    NamaOperator = Column(String(100))


# --- Production des bonggolan ---

class BrokerProduksi(Base):
    __tablename__ = 'BrokerProduksi_h'

    NoProduksi = Column(String(50), primary_key=True)
    IdMesin = Column(Integer)
    IdOperator = Column(Integer)


class BrokerProduksiOutputBonggolan(Base):
    __tablename__ = 'BrokerProduksiOutputBonggolan'

    NoProduksi = Column(String(50), primary_key=True)
    NoBonggolan = Column(String(50), primary_key=True)


class InjectProduksi(Base):
    __tablename__ = 'InjectProduksi_h'

    NoProduksi = Column(String(50), primary_key=True)
    IdMesin = Column(Integer)
    IdOperator = Column(Integer)


class InjectProduksiOutputBonggolan(Base):
    __tablename__ = 'InjectProduksiOutputBonggolan'

    NoProduksi = Column(String(50), primary_key=True)
    NoBonggolan = Column(String(50), primary_key=True)
