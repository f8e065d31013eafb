"""Business logic services for the placement pipeline API."""

from .token import issue_token, read_identity
from .cutoff import CutoffRule, Verdict, evaluate

__all__ = [
    "issue_token",
    "read_identity",
    "CutoffRule",
    "Verdict",
    "evaluate",
]
