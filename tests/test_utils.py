"""
Tests for the general sample helpers.
"""

import pytest
import numpy as np
import pandas as pd
import sys
import os

# Add the parent directory to the path to import the module
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from geochemmath.utils.general import (
    parse_number, as_rows, column_values, extract_columns, valid_counts,
    numeric_columns, identifier_columns, distinct
)


class TestParseNumber:
    """Tests for raw cell parsing."""

    @pytest.mark.parametrize('value,expected', [
        (1, 1.0), (2.5, 2.5), ('3.25', 3.25), ('  -4 ', -4.0), ('1e-3', 0.001)
    ])
    def test_numeric(self, value, expected):
        """Numbers and numeric strings parse."""
        assert parse_number(value) == expected

    @pytest.mark.parametrize('value', [None, '', '   ', 'n.d.', '<0.01', True, float('nan'), float('inf'), [1]])
    def test_non_numeric(self, value):
        """Missing, text, booleans and non-finite values do not parse."""
        assert parse_number(value) is None


class TestColumns:
    """Tests for column extraction."""

    rows = [
        {'SampleID': 'A-1', 'SiO2': '50.1', 'MgO': 3},
        {'SampleID': 'A-2', 'SiO2': 'bdl', 'MgO': 4},
        {'SampleID': 'A-3', 'SiO2': 52.0},
    ]

    def test_column_values(self):
        """Unparseable and absent cells become NaN."""
        values = column_values(self.rows, 'MgO')
        assert values[0] == 3.0
        assert values[1] == 4.0
        assert np.isnan(values[2])

    def test_extract_columns(self):
        """Test extracting several columns."""
        columns = extract_columns(self.rows, ['SiO2', 'MgO'])
        assert list(columns) == ['SiO2', 'MgO']
        assert np.isnan(columns['SiO2'][1])

    def test_valid_counts(self):
        """Test per-column valid counts."""
        assert valid_counts(self.rows, ['SiO2', 'MgO']) == {'SiO2': (2, 3), 'MgO': (2, 3)}

    def test_numeric_columns(self):
        """Mostly numeric columns are detected."""
        assert numeric_columns(self.rows) == ['SiO2', 'MgO']

    def test_as_rows_dataframe(self):
        """DataFrames are converted to row records."""
        df = pd.DataFrame({'a': [1.0, np.nan], 'b': ['x', 'y']})
        rows = as_rows(df)
        assert len(rows) == 2
        assert rows[0]['a'] == 1.0
        assert rows[1]['b'] == 'y'
        assert numeric_columns(rows) == ['a']


class TestIdentifierColumns:
    """Tests for identifier column detection."""

    def test_detects_identifiers(self):
        """Test common identifier names."""
        names = ['Sample ID', 'sample_no', 'Index', 'Seq', '시료번호', 'SiO2', 'Oxide', 'Nd']
        assert identifier_columns(names) == ['Sample ID', 'sample_no', 'Index', 'Seq', '시료번호']

    def test_distinct(self):
        """Duplicates are removed in order."""
        assert distinct(['b', 'a', 'b', 'c', 'a']) == ['b', 'a', 'c']
