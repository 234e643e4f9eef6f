"""
Patterns Module

Pattern compilation and domain matching.
"""
from certwatch.patterns.matcher import evaluate
from certwatch.patterns.pattern_set import Pattern, PatternSet, load_patterns

__all__ = [
    "Pattern",
    "PatternSet",
    "evaluate",
    "load_patterns",
]
