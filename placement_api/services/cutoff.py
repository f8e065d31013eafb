"""Cutoff evaluation: turns marks and a stage's cutoff rule into a verdict.

Pure functions only; nothing here touches the database.
"""

import enum
from dataclasses import dataclass
from typing import Optional


class Verdict(str, enum.Enum):
    QUALIFIED = "Qualified"
    NOT_QUALIFIED = "Not Qualified"
    PENDING = "Pending"


class CutoffKind(str, enum.Enum):
    PERCENTAGE = "percentage"
    MARKS = "marks"
    NONE = "none"


@dataclass(frozen=True)
class CutoffRule:
    """Qualification threshold of a stage.

    ``total_marks`` is the denominator used for percentage cutoffs; a missing
    ``threshold`` is treated as 0.
    """

    kind: str = CutoffKind.PERCENTAGE.value
    threshold: Optional[float] = None
    total_marks: Optional[float] = None


def compute_percentage(marks_obtained: Optional[float], total_marks: Optional[float]) -> Optional[float]:
    """Percentage of ``total_marks`` scored, or None when undefined."""
    if marks_obtained is None or total_marks is None or total_marks <= 0:
        return None
    return marks_obtained / total_marks * 100


def evaluate(marks_obtained: float, total_marks: Optional[float], rule: CutoffRule) -> Verdict:
    """
    Decide whether a candidate qualifies under a cutoff rule.

    - percentage: Qualified iff marks/total*100 >= threshold; Pending when
      the percentage is undefined (total missing or zero)
    - marks: Qualified iff marks >= threshold
    - none: always Pending, a human decides

    Args:
        marks_obtained: Marks scored by the candidate
        total_marks: Maximum marks for the stage
        rule: The stage's cutoff rule

    Returns:
        The verdict
    """
    kind = CutoffKind(rule.kind)
    threshold = rule.threshold if rule.threshold is not None else 0.0

    if kind is CutoffKind.NONE:
        return Verdict.PENDING

    if kind is CutoffKind.MARKS:
        return Verdict.QUALIFIED if marks_obtained >= threshold else Verdict.NOT_QUALIFIED

    percentage = compute_percentage(marks_obtained, total_marks)
    if percentage is None:
        return Verdict.PENDING
    return Verdict.QUALIFIED if percentage >= threshold else Verdict.NOT_QUALIFIED
