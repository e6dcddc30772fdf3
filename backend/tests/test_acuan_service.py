import pytest
from unittest.mock import patch
from sqlalchemy import update
from models.inventory import Crusher
from services.acuan_service import AcuanService, resolve_categories
from services.label_validator import LabelValidator
from services.query_builder import LabelFilter
from utils.error_handler import LabelFormatError


class TestResolveCategories:
    """Tests pour le filtre filterBy"""

    def test_all_categories(self):
        assert len(resolve_categories('all')) == 10
        assert len(resolve_categories(None)) == 10

    def test_single_category(self):
        categories = resolve_categories('Crusher')

        assert [c.code for c in categories] == ['crusher']

    def test_invalid_filter_raises(self):
        """Test un filterBy inconnu est une erreur de saisie"""
        with pytest.raises(LabelFormatError) as exc:
            resolve_categories('plastik')

        assert 'filterBy' in exc.value.message


class TestAcuanService:
    """Tests pour la résolution de l'acuan"""

    @pytest.fixture
    def service(self, plant_data):
        return AcuanService(plant_data, max_workers=3)

    def test_counted_labels_leave_the_page(self, service):
        """Test SO-001 : une étiquette restante sur deux attendues"""
        result = service.resolve_acuan('SO-001', 1, 20)

        assert result['success'] == True
        assert result['totalData'] == 1
        assert [row['NomorLabel'] for row in result['data']] == ['B.0000000001']
        assert result['totalLabelGlobal'] == 2

    def test_totals(self, service):
        """Test totaux restants et globaux (quantité et poids)"""
        result = service.resolve_acuan('SO-001', 1, 20)

        assert result['totalQty'] == 3
        assert result['totalBerat'] == 30.0
        assert result['totalQtyGlobal'] == 5
        assert result['totalBeratGlobal'] == 55.0

    def test_row_content(self, service):
        row = service.resolve_acuan('SO-001', 1, 20)['data'][0]

        assert row['LabelType'] == 'Washing'
        assert row['LabelTypeCode'] == 'washing'
        assert row['JmlhSak'] == 3
        assert row['Berat'] == 30.0
        assert row['Blok'] == 'A1'
        assert row['IdLokasi'] == 1

    def test_rows_sorted_by_label_descending(self, service):
        result = service.resolve_acuan('SO-002', 1, 50)
        labels = [row['NomorLabel'] for row in result['data']]

        assert len(labels) == 8
        assert labels == sorted(labels, reverse=True)
        assert 'A.0001-1' in labels

    def test_live_measures_in_rows(self, service):
        """Test quantités recalculées depuis les tables sources"""
        rows = {
            row['NomorLabel']: row
            for row in service.resolve_acuan('SO-002', 1, 50)['data']
        }

        assert rows['A.0001-1']['JmlhSak'] == 2
        assert rows['A.0001-1']['Berat'] == 45.0
        assert rows['D.0000000001']['Berat'] == 8.0
        assert rows['F.000123']['JmlhSak'] is None
        assert rows['F.000123']['Berat'] == 40.13
        assert rows['BB.0000000001']['JmlhSak'] == 6
        # Étiquette consommée : plus de stock actif
        assert rows['V.0000000001']['Berat'] == 0.0

    def test_pagination(self, service):
        first = service.resolve_acuan('SO-002', 1, 3)
        third = service.resolve_acuan('SO-002', 3, 3)

        assert len(first['data']) == 3
        assert len(third['data']) == 2
        assert first['totalPages'] == 3
        assert first['totalData'] == 8
        assert third['hasData'] == True

    def test_page_beyond_end(self, service):
        result = service.resolve_acuan('SO-002', 10, 20)

        assert result['data'] == []
        assert result['hasData'] == False
        assert result['totalData'] == 8

    def test_filter_by_category(self, service):
        result = service.resolve_acuan('SO-002', 1, 20, filter_by='crusher')

        assert [row['NomorLabel'] for row in result['data']] == ['F.000123']
        assert result['totalLabelGlobal'] == 1

    def test_filter_by_blok_and_location(self, service):
        """Test filtres Blok / IdLokasi sur la localisation courante"""
        by_blok = service.resolve_acuan('SO-002', 1, 20, filters=LabelFilter(blok='C1'))
        by_location = service.resolve_acuan('SO-002', 1, 20, filters=LabelFilter(blok='C1', idlokasi=5))

        assert {row['NomorLabel'] for row in by_blok['data']} == {'F.000123', 'M.0000000001'}
        assert [row['NomorLabel'] for row in by_location['data']] == ['F.000123']

    def test_blok_filter_ignores_case(self, service, plant_data):
        """Test un Blok saisi en minuscules reste visible, comme au scan"""
        session = plant_data.get_session()
        session.execute(update(Crusher).where(Crusher.NoCrusher == 'F.000123').values(Blok=' c1'))
        session.commit()
        session.close()

        validation = LabelValidator(plant_data).validate('SO-002', 'F.000123', 'operator1')
        result = service.resolve_acuan('SO-002', 1, 20, 'crusher', LabelFilter(blok='C1'))

        assert validation.id_warehouse == 1
        assert result['totalData'] == 1
        assert result['data'][0]['NomorLabel'] == 'F.000123'

    def test_search_is_literal(self, service):
        """Test recherche par sous-chaîne, caractères spéciaux échappés"""
        found = service.resolve_acuan('SO-002', 1, 20, filters=LabelFilter(search='000123'))
        wildcard = service.resolve_acuan('SO-002', 1, 20, filters=LabelFilter(search='%'))
        injection = service.resolve_acuan('SO-002', 1, 20, filters=LabelFilter(search="' OR 1=1 --"))

        assert [row['NomorLabel'] for row in found['data']] == ['F.000123']
        assert wildcard['totalData'] == 0
        assert injection['totalData'] == 0

    def test_unknown_batch_is_empty(self, service):
        result = service.resolve_acuan('SO-404', 1, 20)

        assert result['success'] == True
        assert result['totalData'] == 0
        assert result['totalLabelGlobal'] == 0

    def test_invalid_filter_raises(self, service):
        with pytest.raises(LabelFormatError):
            service.resolve_acuan('SO-002', 1, 20, filter_by='inconnu')

    def test_three_reads_submitted(self, service):
        """Test page, totaux restants et totaux globaux lancés séparément"""
        with patch.object(service, '_fetch_totals', wraps=service._fetch_totals) as totals:
            service.resolve_acuan('SO-001', 1, 20)

        pending_flags = sorted(call.args[3] for call in totals.call_args_list)
        assert pending_flags == [False, True]
