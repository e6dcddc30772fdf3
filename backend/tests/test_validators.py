import pytest
from unittest.mock import patch
from utils.validators import RequestValidator


class TestRequestValidator:
    """Tests pour RequestValidator"""

    def test_validate_required_ok(self):
        is_valid, errors = RequestValidator.validate_required(
            {'label': 'F.000123', 'idlokasi': 5, 'berat': 40.13}, RequestValidator.SCAN_REQUIRED_FIELDS
        )

        assert is_valid == True
        assert errors == []

    def test_validate_required_missing_fields(self):
        """Test champs absents ou vides"""
        is_valid, errors = RequestValidator.validate_required({'label': '  '}, ('label', 'idlokasi'))

        assert is_valid == False
        assert errors == ['label wajib diisi', 'idlokasi wajib diisi']

    def test_scan_requires_berat(self):
        is_valid, errors = RequestValidator.validate_required(
            {'label': 'F.000123', 'idlokasi': 5}, RequestValidator.SCAN_REQUIRED_FIELDS
        )

        assert is_valid == False
        assert errors == ['berat wajib diisi']

    def test_validate_required_not_a_dict(self):
        is_valid, errors = RequestValidator.validate_required(['F.000123'], ('label',))

        assert is_valid == False
        assert len(errors) == 1

    def test_normalize_label(self):
        assert RequestValidator.normalize_label(' f.000123 ') == 'F.000123'
        assert RequestValidator.normalize_label(None) == ''

    def test_normalize_blok(self):
        """Test Blok en majuscules ; vide ou 'all' → aucun filtre"""
        assert RequestValidator.normalize_blok(' c1 ') == 'C1'
        assert RequestValidator.normalize_blok('all') is None
        assert RequestValidator.normalize_blok('') is None
        assert RequestValidator.normalize_blok(None) is None

    @pytest.mark.parametrize('value, expected', [
        (5, 5),
        ('12', 12),
        (' 7 ', 7),
        (3.0, 3),
        ('', None),
        ('all', None),
        (None, None),
    ])
    def test_parse_idlokasi(self, value, expected):
        assert RequestValidator.parse_idlokasi(value) == expected

    @pytest.mark.parametrize('value', ['C1', True, '1.5', 2.5])
    def test_parse_idlokasi_invalid(self, value):
        with pytest.raises(ValueError):
            RequestValidator.parse_idlokasi(value)

    def test_parse_number(self):
        assert RequestValidator.parse_number('12.5', 'berat') == 12.5
        assert RequestValidator.parse_number(None, 'berat') == 0.0
        with pytest.raises(ValueError):
            RequestValidator.parse_number('lourd', 'berat')

    def test_parse_pagination_defaults(self):
        assert RequestValidator.parse_pagination({}) == (1, 20)

    def test_parse_pagination_bounds(self):
        """Test page minimale 1, taille bornée par la configuration"""
        assert RequestValidator.parse_pagination({'page': '0', 'pageSize': '5000'}) == (1, 200)
        assert RequestValidator.parse_pagination({'page': 'x', 'pageSize': 'y'}) == (1, 20)

    def test_parse_pagination_uses_configuration(self):
        with patch('utils.validators.config_service.get_pagination_config',
                   return_value={'default_page_size': 50, 'max_page_size': 60}):
            assert RequestValidator.parse_pagination({}) == (1, 50)
            assert RequestValidator.parse_pagination({'pageSize': '100'}) == (1, 60)

    def test_parse_bool(self):
        assert RequestValidator.parse_bool('true') == True
        assert RequestValidator.parse_bool('1') == True
        assert RequestValidator.parse_bool('false') == False
        assert RequestValidator.parse_bool(True) == True
