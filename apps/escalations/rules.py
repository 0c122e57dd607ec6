"""
Applicability rules: does a template apply to a record?

Rules are combined with a sequential fold, not an expression tree. Each
rule carries its own `logic` which is applied against the running result:

    acc = True
    for rule in rules:
        acc = (acc or r) if rule.logic == 'OR' else (acc and r)

Two-rule lists read naturally. With three or more mixed rules the result
groups to the left, so `A AND B OR C AND D` means `((A and B) or C) and D`.
Template authors relying on other precedence must reorder their rules.
"""

import math
from collections.abc import Mapping

from django.db import models

from .definitions import Logic, Rule, resolve_field


def _is_blank(value):
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, set, dict)):
        return len(value) == 0
    return False


def _to_number(value):
    """Coerce to a finite float, or None when the value is not numeric."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def _to_text(value):
    if isinstance(value, bool):
        return 'true' if value else 'false'
    return str(value)


# =============================================================================
# Comparison functions
# =============================================================================
# A None field value is handled before dispatch (see evaluate_rule).

def _equals(field_value, expected):
    left, right = _to_number(field_value), _to_number(expected)
    if left is not None and right is not None:
        return left == right
    if expected is None:
        return False
    return _to_text(field_value) == _to_text(expected)


def _not_equals(field_value, expected):
    return not _equals(field_value, expected)


def _contains(field_value, expected):
    needle = _to_text(expected).lower() if expected is not None else ''
    if isinstance(field_value, (list, tuple, set)):
        return any(needle in _to_text(item).lower() for item in field_value)
    return needle in _to_text(field_value).lower()


def _greater_than(field_value, expected):
    left, right = _to_number(field_value), _to_number(expected)
    return left is not None and right is not None and left > right


def _less_than(field_value, expected):
    left, right = _to_number(field_value), _to_number(expected)
    return left is not None and right is not None and left < right


def _is_empty(field_value, expected):
    return _is_blank(field_value)


def _is_not_empty(field_value, expected):
    return not _is_blank(field_value)


class Operator(models.TextChoices):
    EQUALS = 'equals', 'Equals'
    NOT_EQUALS = 'notEquals', 'Not equals'
    CONTAINS = 'contains', 'Contains'
    GREATER_THAN = 'greaterThan', 'Greater than'
    LESS_THAN = 'lessThan', 'Less than'
    IS_EMPTY = 'isEmpty', 'Is empty'
    IS_NOT_EMPTY = 'isNotEmpty', 'Is not empty'

    @property
    def needs_value(self):
        return self not in (Operator.IS_EMPTY, Operator.IS_NOT_EMPTY)

    def compare(self, field_value, expected):
        return _COMPARATORS[self](field_value, expected)

    def compare_missing(self, expected):
        """Result when the record has no value for the field."""
        if self == Operator.EQUALS:
            return expected is None or expected == ''
        if self == Operator.NOT_EQUALS:
            return not (expected is None or expected == '')
        if self == Operator.IS_EMPTY:
            return True
        return False


_COMPARATORS = {
    Operator.EQUALS: _equals,
    Operator.NOT_EQUALS: _not_equals,
    Operator.CONTAINS: _contains,
    Operator.GREATER_THAN: _greater_than,
    Operator.LESS_THAN: _less_than,
    Operator.IS_EMPTY: _is_empty,
    Operator.IS_NOT_EMPTY: _is_not_empty,
}


def evaluate_rule(operator, field_value, expected):
    """
    Evaluate one operator against a field value.

    Unknown operators evaluate to False (templates with unknown operators
    are rejected at save time).
    """
    try:
        op = Operator(operator)
    except ValueError:
        return False
    if field_value is None:
        return op.compare_missing(expected)
    return op.compare(field_value, expected)


def sequential_fold(results):
    """
    Fold (logic, result) pairs left to right starting from True.

    'OR' combines with `or`; anything else, including a missing logic,
    combines with `and`.
    """
    acc = True
    for logic, result in results:
        if logic == Logic.OR:
            acc = acc or result
        else:
            acc = acc and result
    return acc


class RuleEvaluator:
    """Decides whether a template's applicability rules match a record."""

    def applies(self, rules, record):
        if not rules:
            return True
        rules = [Rule.from_dict(rule) if isinstance(rule, Mapping) else rule for rule in rules]
        return sequential_fold(
            (rule.logic, self.evaluate(rule, record)) for rule in rules
        )

    def evaluate(self, rule, record):
        field_value = resolve_field(record, rule.field) if isinstance(record, Mapping) else None
        return evaluate_rule(rule.operator, field_value, rule.value)


def applies(rules, record):
    """Shortcut for RuleEvaluator().applies()."""
    return RuleEvaluator().applies(rules, record)
