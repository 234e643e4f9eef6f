"""Match certificate events against a PatternSet."""
from __future__ import annotations

from certwatch.models.cert import CertificateEvent, MatchResult
from certwatch.patterns.pattern_set import PatternSet


def evaluate(event: CertificateEvent, patterns: PatternSet) -> list[MatchResult]:
    """
    Return one MatchResult per domain that matched at least one pattern.

    Domains with no match produce nothing. Results follow domain order.
    """
    results: list[MatchResult] = []
    for domain in event.domains:
        matched = patterns.match_all(domain)
        if matched:
            results.append(MatchResult(domain=domain, patterns=matched))
    return results
