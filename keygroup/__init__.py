"""keygroup: collapse duplicate key-group records to one row per key.

Attributes that disagree within a key group are reconciled with an explicit
fallback policy (mode, then lag, lead, last or max) before the table is
deduplicated. pandas and polars DataFrames are both supported.
"""
from keygroup.pandas_reconcile import (
    decode_ordinal, dedupe, duplicate_keys, encode_ordinal,
    inconsistency_summary, reconcile, reconcile_attribute,
)
from keygroup.pipeline import AttributeRule, ReconcilePipeline, reconciler_for
from keygroup.policy import (
    KEY_GROUP_POLICY, MODE_MAX_POLICY, NO_MODE, NO_VALUE, RECORD_POLICY,
    FallbackPolicy, ReconcileConfigError, default_policy,
)
from keygroup.resolution import GroupResolution, ReconcileReport
from keygroup.resolver import group_mode

__version__ = "0.1.0"

__all__ = [
    'AttributeRule', 'FallbackPolicy', 'GroupResolution', 'KEY_GROUP_POLICY',
    'MODE_MAX_POLICY', 'NO_MODE', 'NO_VALUE', 'RECORD_POLICY',
    'ReconcileConfigError', 'ReconcilePipeline', 'ReconcileReport',
    'decode_ordinal', 'dedupe', 'default_policy', 'duplicate_keys',
    'encode_ordinal', 'group_mode', 'inconsistency_summary', 'reconcile',
    'reconcile_attribute', 'reconciler_for',
]
