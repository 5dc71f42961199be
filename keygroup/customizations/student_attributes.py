"""Reconciliation rules for a longitudinal student-year table.

The table has one or more rows per (``sid``, ``school_year``). Demographic
attributes are fixed for a student's whole record; program participation
may change from one year to the next but must be constant within a year.

  - ``male``, ``race_ethnicity``: keyed on ``sid``; the most frequent
    value, else the value reported in the latest year.
  - ``frpl`` (N < R < F), ``iep``, ``ell``, ``gifted`` (N < Y): keyed on
    (``sid``, ``school_year``); the year's mode, else last year's mode,
    else next year's mode, else the highest level reported that year.

Usage::

    from keygroup.customizations.student_attributes import StudentAttributesPipeline

    student_year, reports = StudentAttributesPipeline().process_df(raw_df)
"""
from keygroup.pipeline import AttributeRule, ReconcilePipeline
from keygroup.policy import KEY_GROUP_POLICY, RECORD_POLICY

STUDENT_ID = 'sid'
SCHOOL_YEAR = 'school_year'

FRPL_ORDER = ('N', 'R', 'F')
YES_NO_ORDER = ('N', 'Y')

LIFETIME_ATTRIBUTES = ('male', 'race_ethnicity')
YEARLY_ATTRIBUTES = {
    'frpl': FRPL_ORDER,
    'iep': YES_NO_ORDER,
    'ell': YES_NO_ORDER,
    'gifted': YES_NO_ORDER,
}


def lifetime_rule(attribute: str) -> AttributeRule:
    return AttributeRule(attribute, key_columns=(STUDENT_ID,), policy=RECORD_POLICY)


def yearly_rule(attribute: str, order) -> AttributeRule:
    return AttributeRule(attribute, policy=KEY_GROUP_POLICY, order=order)


class StudentAttributesPipeline(ReconcilePipeline):
    """One row per student per school year, attributes reconciled."""
    key_columns = [STUDENT_ID, SCHOOL_YEAR]
    ordering_column = SCHOOL_YEAR
    rules = (
        [lifetime_rule(a) for a in LIFETIME_ATTRIBUTES]
        + [yearly_rule(a, order) for a, order in YEARLY_ATTRIBUTES.items()]
    )
