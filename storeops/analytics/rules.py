"""
Ordered rule tables.

A rule table is a list of (predicate, result) pairs evaluated top to bottom;
the first predicate that holds decides the result.
"""

from dataclasses import dataclass
from typing import Callable, Generic, Optional, Sequence, TypeVar

T = TypeVar("T")
R = TypeVar("R")


@dataclass(frozen=True)
class Rule(Generic[T, R]):
    name: str
    predicate: Callable[[T], bool]
    result: R


def first_match(rules: Sequence[Rule[T, R]], subject: T, default: Optional[R] = None) -> Optional[R]:
    """Return the result of the first rule whose predicate holds, else `default`."""
    rule = matching_rule(rules, subject)
    return rule.result if rule is not None else default


def matching_rule(rules: Sequence[Rule[T, R]], subject: T) -> Optional[Rule[T, R]]:
    """Return the first rule whose predicate holds for `subject`."""
    for rule in rules:
        if rule.predicate(subject):
            return rule
    return None
