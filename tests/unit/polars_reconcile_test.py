"""Tests for keygroup.polars_reconcile."""
import logging

import polars as pl
import pytest
from polars.testing import assert_frame_equal

from keygroup.polars_reconcile import (
    decode_ordinal, dedupe, duplicate_keys, encode_ordinal,
    inconsistency_summary, reconcile, reconcile_attribute,
)
from keygroup.policy import ReconcileConfigError

KEYS = ['id', 'year']


def years_df():
    return pl.DataFrame({
        'id':   [1, 1, 1, 1, 2, 2, 2],
        'year': [2014, 2015, 2015, 2016, 2015, 2015, 2016],
        'code': [1, 2, 3, 4, 5, 5, 6],
    })


# ============================================================================
# Worked scenarios
# ============================================================================

class TestScenarios:
    def test_ell_tie_without_neighbors_takes_max(self):
        df = pl.DataFrame({'id': [1, 1], 'year': [2015, 2015], 'ell': ['N', 'Y']})
        df = encode_ordinal(df, 'ell', ['N', 'Y'])
        out, report = reconcile_attribute(df, KEYS, 'ell', ordering_column='year')
        assert out['ell'].to_list() == ['Y', 'Y']
        assert out.schema['ell'] == pl.Enum(['N', 'Y'])
        assert report.resolved_by('max') == 1

    def test_frpl_tie_takes_previous_year(self):
        df = pl.DataFrame({'id': [2, 2, 2], 'year': [2014, 2015, 2015], 'frpl': ['R', 'F', 'N']})
        df = encode_ordinal(df, 'frpl', ['N', 'R', 'F'])
        out, report = reconcile_attribute(df, KEYS, 'frpl', ordering_column='year')
        assert out['frpl'].to_list() == ['R', 'R', 'R']
        assert report.resolved_by('lag') == 1
        assert report.changed_rows == 2

    def test_lag_before_lead(self):
        out = reconcile(years_df(), KEYS, 'code', ordering_column='year')
        assert out['code'].to_list() == [1, 1, 1, 4, 5, 5, 6]

    def test_first_year_takes_following_year(self):
        df = pl.DataFrame({'id': [1, 1, 1], 'year': [2014, 2014, 2015], 'code': [2, 3, 4]})
        out, report = reconcile_attribute(df, KEYS, 'code', ordering_column='year')
        assert out['code'].to_list() == [4, 4, 4]
        assert report.resolved_by('lead') == 1

    def test_record_level_takes_latest(self):
        df = pl.DataFrame({
            'sid': [1, 1, 1, 1],
            'school_year': [2014, 2017, 2015, 2016],
            'race': ['A', 'A', 'B', 'B'],
        })
        out = reconcile(df, 'sid', 'race', ordering_column='school_year')
        assert out['race'].to_list() == ['A'] * 4

    def test_step_column(self):
        out, _ = reconcile_attribute(years_df(), KEYS, 'code', ordering_column='year',
                                     step_column='step')
        assert out.schema['step'] == pl.String
        assert out['step'].to_list() == ['mode', 'lag', 'lag', 'mode', 'mode', 'mode', 'mode']


# ============================================================================
# Properties
# ============================================================================

class TestProperties:
    def test_group_invariance(self):
        out = reconcile(years_df(), KEYS, 'code', ordering_column='year')
        counts = out.group_by(KEYS).agg(pl.col('code').n_unique().alias('n'))
        assert counts['n'].to_list() == [1] * len(counts)

    def test_idempotent(self):
        once = reconcile(years_df(), KEYS, 'code', ordering_column='year')
        twice, report = reconcile_attribute(once, KEYS, 'code', ordering_column='year')
        assert_frame_equal(once, twice)
        assert report.changed_rows == 0

    def test_idempotent_with_missing_and_unresolved_groups(self):
        df = pl.DataFrame({'id': [1, 1, 2, 2], 'year': [2015] * 4,
                           'x': [None, None, 1.0, 2.0]})
        policy = ['mode', 'lag', 'lead']
        once, first = reconcile_attribute(df, KEYS, 'x', ordering_column='year', policy=policy)
        assert first.group_counts == {'missing': 1, 'unresolved': 1}
        twice, second = reconcile_attribute(once, KEYS, 'x', ordering_column='year', policy=policy)
        assert_frame_equal(once, twice)
        assert second.changed_rows == 0

    def test_input_not_modified(self):
        df = years_df()
        before = df.clone()
        reconcile(df, KEYS, 'code', ordering_column='year')
        assert_frame_equal(df, before)

    def test_schema_kept(self):
        df = years_df()
        out = reconcile(df, KEYS, 'code', ordering_column='year')
        assert out.schema == df.schema

    def test_dedupe(self):
        out = dedupe(reconcile(years_df(), KEYS, 'code', ordering_column='year'), KEYS)
        assert out.height == 5
        assert not out.select(KEYS).is_duplicated().any()
        assert out['year'].to_list() == [2014, 2015, 2016, 2015, 2016]

    def test_dedupe_keeps_first_row(self):
        df = pl.DataFrame({'id': [1, 1, 2], 'year': [2015, 2015, 2014], 'note': ['a', 'b', 'c']})
        assert dedupe(df, KEYS)['note'].to_list() == ['a', 'c']


# ============================================================================
# Missing values
# ============================================================================

class TestMissing:
    def test_nulls_do_not_vote(self):
        df = pl.DataFrame({'id': [1, 1, 1], 'year': [2015] * 3, 'ell': [None, None, 'Y']})
        out = reconcile(df, KEYS, 'ell', ordering_column='year', policy='mode -> lag -> lead')
        assert out['ell'].to_list() == ['Y', 'Y', 'Y']

    def test_nan_counts_as_missing(self, caplog):
        df = pl.DataFrame({'id': [1, 1, 2], 'year': [2015, 2015, 2015],
                           'x': [float('nan'), None, 3.0]})
        with caplog.at_level(logging.WARNING, logger="keygroup.reconcile"):
            out, report = reconcile_attribute(df, KEYS, 'x', ordering_column='year')
        assert out['x'].to_list() == [None, None, 3.0]
        assert report.missing_keys == [(1, 2015)]
        assert report.changed_rows == 0
        assert "no usable value" in caplog.text

    def test_sentinel_values_count_as_missing(self):
        df = pl.DataFrame({'id': [1, 1, 1], 'race': ['.', '.', 'White']})
        out = reconcile(df, 'id', 'race', policy='mode', missing_values=['.'])
        assert out['race'].to_list() == ['White'] * 3

    def test_sentinel_only_group_becomes_null(self):
        df = pl.DataFrame({'id': [1, 1], 'code': [-1, -1]})
        out, report = reconcile_attribute(df, 'id', 'code', missing_values=[-1])
        assert out['code'].to_list() == [None, None]
        assert out.schema['code'] == pl.Int64
        assert report.changed_rows == 2


# ============================================================================
# Ordinal encoding
# ============================================================================

class TestOrdinal:
    def test_max_uses_declared_order(self):
        df = encode_ordinal(pl.DataFrame({'id': [1, 1], 'frpl': ['F', 'N']}), 'frpl', ['N', 'R', 'F'])
        out = reconcile(df, 'id', 'frpl', policy='mode -> max')
        assert out['frpl'].to_list() == ['F', 'F']

    def test_encode_decode(self):
        df = pl.DataFrame({'frpl': ['R', None, '.']})
        enc = encode_ordinal(df, 'frpl', ['N', 'R', 'F'], missing_values=['.'])
        assert enc.schema['frpl'] == pl.Enum(['N', 'R', 'F'])
        dec = decode_ordinal(enc, 'frpl')
        assert dec.schema['frpl'] == pl.String
        assert dec['frpl'].to_list() == ['R', None, None]

    def test_encode_rejects_unknown_values(self):
        with pytest.raises(ReconcileConfigError, match="maybe"):
            encode_ordinal(pl.DataFrame({'ell': ['Y', 'maybe']}), 'ell', ['N', 'Y'])

    def test_encode_needs_string_categories(self):
        with pytest.raises(ReconcileConfigError, match="must be strings"):
            encode_ordinal(pl.DataFrame({'grade': [1, 2]}), 'grade', [1, 2, 3])

    def test_decode_requires_enum(self):
        with pytest.raises(ReconcileConfigError, match="not ordinally encoded"):
            decode_ordinal(pl.DataFrame({'ell': ['Y']}), 'ell')


# ============================================================================
# Configuration errors
# ============================================================================

class TestConfigErrors:
    def test_max_on_plain_strings(self):
        df = pl.DataFrame({'id': [1, 1], 'year': [2015, 2015], 'ell': ['N', 'Y']})
        with pytest.raises(ReconcileConfigError, match="encode_ordinal"):
            reconcile(df, KEYS, 'ell', ordering_column='year')

    def test_max_on_unordered_categorical(self):
        df = pl.DataFrame({'id': [1, 1], 'ell': ['N', 'Y']}).with_columns(
            pl.col('ell').cast(pl.Categorical))
        with pytest.raises(ReconcileConfigError, match="orderable"):
            reconcile(df, 'id', 'ell', policy='mode -> max')

    def test_absent_attribute(self):
        with pytest.raises(ReconcileConfigError, match="not found"):
            reconcile(years_df(), KEYS, 'nope', ordering_column='year')

    def test_lag_with_ordering_outside_key(self):
        with pytest.raises(ReconcileConfigError, match="must be one of the key"):
            reconcile(years_df(), 'id', 'code', ordering_column='year', policy='mode -> lead')

    def test_last_without_ordering(self):
        with pytest.raises(ReconcileConfigError, match="needs an ordering column"):
            reconcile(years_df(), 'id', 'code', policy='mode -> last')


# ============================================================================
# Inspection
# ============================================================================

class TestInspection:
    def test_duplicate_keys(self):
        dups = duplicate_keys(years_df(), KEYS)
        assert dups['code'].to_list() == [2, 3, 5, 5]

    def test_inconsistency_summary(self):
        summary = inconsistency_summary(years_df(), KEYS)
        assert summary == {'code': {'conflict_groups': 1, 'conflict_rows': 2}}
