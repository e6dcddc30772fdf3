import os
import sys
import tempfile
from datetime import date, datetime, timedelta

import pytest

# Base SQLite dédiée aux tests (fichier : plusieurs connexions concurrentes)
_TEST_DIR = tempfile.mkdtemp(prefix='stock_opname_tests_')
os.environ['DATABASE_URL'] = 'sqlite:///' + os.path.join(_TEST_DIR, 'stock_opname_test.db')
os.environ.pop('ASCEND_DATABASE_URL', None)
os.environ['LOG_FOLDER'] = os.path.join(_TEST_DIR, 'logs')

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import insert

from app import app
from database import db_manager
from models.base import Base
from models import inventory as inv
from models.ascend import (
    AscendFamily, AscendItem, AscendItemLedger, StockOpnameAscend
)
from models.stock_opname import (
    ACUAN_TABLES, HASIL_TABLES, StockOpname, StockOpnameWarehouse
)
from utils.rate_limiter import rate_limiter

USED = datetime(2024, 1, 10, 8, 0)


class RecordingPublisher:
    """Publisher de test : garde les événements en mémoire"""

    def __init__(self):
        self.events = []

    def publish(self, event, payload):
        self.events.append((event, payload))
        return 1


@pytest.fixture(autouse=True)
def db():
    """Schéma recréé à vide pour chaque test"""
    db_manager.close_session()
    Base.metadata.drop_all(bind=db_manager.engine)
    Base.metadata.create_all(bind=db_manager.engine)
    rate_limiter.reset()
    yield db_manager
    db_manager.close_session()


@pytest.fixture
def client():
    """Client de test Flask"""
    app.config['TESTING'] = True

    with app.test_client() as client:
        with app.app_context():
            yield client


@pytest.fixture
def auth_headers():
    return {'X-Username': 'operator1', 'X-User-Id': '7'}


@pytest.fixture
def publisher():
    return RecordingPublisher()


def _acuan(session, code, noso, **key):
    session.execute(insert(ACUAN_TABLES[code]).values(NoSO=noso, **key))


@pytest.fixture
def plant_data(db):
    """Jeu de données d'usine.

    SO-001 : washing seulement, entrepôt 1.
    SO-002 : toutes les catégories, entrepôt 1.
    """
    session = db.get_session()
    today = date.today()
    try:
        session.add_all([
            inv.MstWarehouse(IdWarehouse=1, NamaWarehouse='Gudang Utama'),
            inv.MstWarehouse(IdWarehouse=2, NamaWarehouse='Gudang Barat'),
            inv.MstBlok(Blok='A1', IdWarehouse=1),
            inv.MstBlok(Blok='C1', IdWarehouse=1),
            inv.MstBlok(Blok='C2', IdWarehouse=1),
            inv.MstBlok(Blok='Z9', IdWarehouse=2),
            StockOpname(NoSO='SO-001', Tanggal=today, IsWashing=True),
            StockOpname(
                NoSO='SO-002', Tanggal=today, IsBahanBaku=True, IsWashing=True,
                IsBroker=True, IsCrusher=True, IsBonggolan=True, IsGilingan=True,
                IsMixer=True, IsFurnitureWIP=True, IsBarangJadi=True, IsReject=True
            ),
        ])
        session.flush()
        session.add_all([
            StockOpnameWarehouse(NoSO='SO-001', IdWarehouse=1),
            StockOpnameWarehouse(NoSO='SO-002', IdWarehouse=1),
        ])

        # Washing : 3 sacs de 10 kg et 2 sacs de 12,5 kg
        session.add_all([
            inv.WashingHeader(NoWashing='B.0000000001', Blok='A1', IdLokasi=1),
            inv.WashingHeader(NoWashing='B.0000000002', Blok='A1', IdLokasi=2),
        ])
        session.add_all([
            inv.WashingDetail(NoWashing='B.0000000001', NoSak=n, Berat=10.0) for n in (1, 2, 3)
        ] + [
            inv.WashingDetail(NoWashing='B.0000000002', NoSak=n, Berat=12.5) for n in (1, 2)
        ])

        # Bahan baku : un sac entier, un sac partiel (25 - 5), un sac consommé
        session.add(inv.BahanBakuPallet(NoBahanBaku='A.0001', NoPallet='1', Blok='A1', IdLokasi=3))
        session.add_all([
            inv.BahanBakuDetail(NoBahanBaku='A.0001', NoPallet='1', NoSak=1, Berat=25.0),
            inv.BahanBakuDetail(NoBahanBaku='A.0001', NoPallet='1', NoSak=2, Berat=25.0, IsPartial=True),
            inv.BahanBakuDetail(NoBahanBaku='A.0001', NoPallet='1', NoSak=3, Berat=25.0, DateUsage=USED),
            inv.BahanBakuPartial(NoBahanBaku='A.0001', NoPallet='1', NoSak=2, Berat=5.0),
        ])

        # Broker : partiel supérieur au poids nominal (ramené à 0)
        session.add(inv.BrokerHeader(NoBroker='D.0000000001', Blok='A1', IdLokasi=4))
        session.add_all([
            inv.BrokerDetail(NoBroker='D.0000000001', NoSak=1, Berat=10.0, IsPartial=True),
            inv.BrokerDetail(NoBroker='D.0000000001', NoSak=2, Berat=8.0),
            inv.BrokerPartial(NoBroker='D.0000000001', NoSak=1, Berat=9.0),
            inv.BrokerPartial(NoBroker='D.0000000001', NoSak=1, Berat=6.0),
        ])

        session.add_all([
            inv.Crusher(NoCrusher='F.000123', Berat=40.126, Blok='C1', IdLokasi=5),
            inv.Bonggolan(NoBonggolan='M.0000000001', Berat=30.0, Blok='C1', IdLokasi=6),
            inv.Gilingan(NoGilingan='V.0000000001', Berat=15.0, Blok='A1', IdLokasi=9, DateUsage=USED),
            inv.MixerHeader(NoMixer='H.0000000001', Blok='A1', IdLokasi=7),
            inv.MixerDetail(NoMixer='H.0000000001', NoSak=1, Berat=20.0),
            inv.Reject(NoReject='BF.0000000001', Berat=4.5, Blok='Z9', IdLokasi=1),
            inv.FurnitureWIP(NoFurnitureWIP='BB.0000000001', Pcs=10, Berat=12.345,
                             IsPartial=True, Blok='C2', IdLokasi=1),
            inv.FurnitureWIPPartial(NoFurnitureWIP='BB.0000000001', Pcs=4),
            inv.BarangJadi(NoBJ='BA.0000000001', Pcs=5, Berat=3.0, IsPartial=True, Blok='C2', IdLokasi=2),
            inv.BarangJadiPartial(NoBJ='BA.0000000001', Pcs=7),
        ])

        # Production du bonggolan
        session.add_all([
            inv.MstMesin(IdMesin=1, NamaMesin='Broker 01'),
            inv.MstMesin(IdMesin=2, NamaMesin='Inject 03'),
            inv.MstOperator(IdOperator=1, NamaOperator='Budi'),
            inv.MstOperator(IdOperator=2, NamaOperator='Sari'),
            inv.BrokerProduksi(NoProduksi='BP.0001', IdMesin=1, IdOperator=1),
            inv.BrokerProduksiOutputBonggolan(NoProduksi='BP.0001', NoBonggolan='M.0000000001'),
            inv.InjectProduksi(NoProduksi='IP.0001', IdMesin=2, IdOperator=2),
            inv.InjectProduksiOutputBonggolan(NoProduksi='IP.0001', NoBonggolan='M.0000000001'),
        ])
        session.flush()

        # Acuan
        _acuan(session, 'washing', 'SO-001', NoWashing='B.0000000001')
        _acuan(session, 'washing', 'SO-001', NoWashing='B.0000000002')
        _acuan(session, 'bahanbaku', 'SO-002', NoBahanBaku='A.0001', NoPallet='1')
        _acuan(session, 'broker', 'SO-002', NoBroker='D.0000000001')
        _acuan(session, 'crusher', 'SO-002', NoCrusher='F.000123')
        _acuan(session, 'bonggolan', 'SO-002', NoBonggolan='M.0000000001')
        _acuan(session, 'gilingan', 'SO-002', NoGilingan='V.0000000001')
        _acuan(session, 'reject', 'SO-002', NoReject='BF.0000000001')
        _acuan(session, 'furniturewip', 'SO-002', NoFurnitureWIP='BB.0000000001')
        _acuan(session, 'barangjadi', 'SO-002', NoBJ='BA.0000000001')

        # B.0000000002 déjà compté dans SO-001
        session.execute(insert(HASIL_TABLES['washing']).values(
            NoSO='SO-001', NoWashing='B.0000000002', JmlhSak=2, Berat=25.0,
            Username='alice', DateTimeScan=datetime.now() - timedelta(minutes=5)
        ))
        session.commit()
    finally:
        session.close()
    return db


@pytest.fixture
def ascend_data(db):
    """NoSO Ascend avec trois articles de deux familles"""
    session = db.get_session()
    try:
        session.add(StockOpname(NoSO='SO-ASC', Tanggal=date.today(), IsAscend=True))
        session.add_all([
            AscendFamily(FamilyID=1, FamilyName='Resin'),
            AscendFamily(FamilyID=2, FamilyName='Pigmen'),
            AscendItem(ItemID=1, ItemCode='RSN-001', ItemName='Resin PP', FamilyID=1, UOM='KG'),
            AscendItem(ItemID=2, ItemCode='RSN-002', ItemName='Resin PE', FamilyID=1, UOM='KG'),
            AscendItem(ItemID=3, ItemCode='PGM-001', ItemName='Pigmen Merah', FamilyID=2, UOM='KG'),
            AscendItem(ItemID=4, ItemCode='RSN-003', ItemName='Resin PP Daur Ulang', FamilyID=1, UOM='KG'),
        ])
        session.flush()
        session.add_all([
            StockOpnameAscend(NoSO='SO-ASC', ItemID=1, QtySystem=10.0),
            StockOpnameAscend(NoSO='SO-ASC', ItemID=2, QtySystem=5.0),
            StockOpnameAscend(NoSO='SO-ASC', ItemID=3, QtySystem=7.0),
        ])
        session.add_all([
            AscendItemLedger(ItemID=1, TrxDate=datetime(2024, 3, 2), TrxType='USAGE', Qty=10.0),
            AscendItemLedger(ItemID=1, TrxDate=datetime(2024, 2, 20), TrxType='USAGE', Qty=100.0),
            AscendItemLedger(ItemID=1, TrxDate=datetime(2024, 3, 3), TrxType='ADJUSTMENT', Qty=2.0),
            AscendItemLedger(ItemID=1, TrxDate=datetime(2024, 3, 4), TrxType='SALES', Qty=3.0),
            AscendItemLedger(ItemID=1, TrxDate=datetime(2024, 3, 5), TrxType='PURCHASE_RETURN', Qty=1.0),
            AscendItemLedger(ItemID=2, TrxDate=datetime(2024, 3, 5), TrxType='USAGE', Qty=4.0),
        ])
        session.commit()
    finally:
        session.close()
    return db
