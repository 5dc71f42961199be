import pandas as pd
import polars as pl

from keygroup.customizations.student_attributes import (
    FRPL_ORDER, StudentAttributesPipeline, YES_NO_ORDER,
)
from keygroup.policy import KEY_GROUP_POLICY, RECORD_POLICY

RAW = {
    'sid':            [1, 1, 1, 1, 2, 2],
    'school_year':    [2014, 2015, 2015, 2016, 2015, 2015],
    'male':           [1, 1, 1, 1, 0, 0],
    'race_ethnicity': ['White', 'White', 'Black', 'White', 'Asian', 'Hispanic'],
    'frpl':           ['F', 'R', 'N', 'N', 'N', 'N'],
    'iep':            ['N', 'N', 'N', 'Y', 'N', 'Y'],
    'ell':            ['N', 'N', 'Y', 'N', 'Y', 'N'],
    'gifted':         ['N', 'N', 'N', 'N', 'Y', 'Y'],
}

EXPECTED = [
    {'sid': 1, 'school_year': 2014, 'male': 1, 'race_ethnicity': 'White',
     'frpl': 'F', 'iep': 'N', 'ell': 'N', 'gifted': 'N'},
    # frpl R/N and ell N/Y tie in 2015; both take the 2014 value
    {'sid': 1, 'school_year': 2015, 'male': 1, 'race_ethnicity': 'White',
     'frpl': 'F', 'iep': 'N', 'ell': 'N', 'gifted': 'N'},
    {'sid': 1, 'school_year': 2016, 'male': 1, 'race_ethnicity': 'White',
     'frpl': 'N', 'iep': 'Y', 'ell': 'N', 'gifted': 'N'},
    # one year only: race ties fall to the later row, iep/ell ties to the max
    {'sid': 2, 'school_year': 2015, 'male': 0, 'race_ethnicity': 'Hispanic',
     'frpl': 'N', 'iep': 'Y', 'ell': 'Y', 'gifted': 'Y'},
]


class TestStudentAttributesPipeline:
    def test_rules(self):
        rules = {r.attribute: r for r in StudentAttributesPipeline().rules}
        assert list(rules) == ['male', 'race_ethnicity', 'frpl', 'iep', 'ell', 'gifted']
        assert rules['male'].key_columns == ('sid',)
        assert rules['male'].policy is RECORD_POLICY
        assert rules['frpl'].key_columns == ('sid', 'school_year')
        assert rules['frpl'].policy is KEY_GROUP_POLICY
        assert rules['frpl'].order == FRPL_ORDER
        assert rules['gifted'].order == YES_NO_ORDER

    def test_pandas(self):
        out, reports = StudentAttributesPipeline().process_df(pd.DataFrame(RAW))
        assert out.to_dict('records') == EXPECTED
        by_attr = {r.attribute: r for r in reports}
        assert by_attr['race_ethnicity'].resolved_by('last') == 1
        assert by_attr['frpl'].resolved_by('lag') == 1
        assert by_attr['iep'].resolved_by('max') == 1
        assert by_attr['ell'].resolved_by('lag') == 1
        assert by_attr['ell'].resolved_by('max') == 1
        assert all(r.missing_groups == 0 for r in reports)

    def test_polars(self):
        out, _ = StudentAttributesPipeline().process_df(pl.DataFrame(RAW))
        assert out.to_dicts() == EXPECTED

    def test_one_row_per_student_year(self):
        out, _ = StudentAttributesPipeline().process_df(pd.DataFrame(RAW))
        assert not out.duplicated(subset=['sid', 'school_year']).any()
        assert list(out.index) == [0, 1, 3, 4]
