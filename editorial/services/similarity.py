import re
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List, Sequence, Tuple

_WHITESPACE = re.compile(r"\s+")


def _bigrams(text: str) -> Counter:
    normalized = _WHITESPACE.sub("", text.lower())
    return Counter(normalized[i : i + 2] for i in range(len(normalized) - 1))


def dice_coefficient(first: str, second: str) -> float:
    """
    Sørensen–Dice coefficient over character bigrams, ignoring whitespace
    and case. Returns a value in [0, 1].
    """
    first_bigrams = _bigrams(first)
    second_bigrams = _bigrams(second)
    total = sum(first_bigrams.values()) + sum(second_bigrams.values())
    if total == 0:
        return 1.0 if _WHITESPACE.sub("", first) == _WHITESPACE.sub("", second) else 0.0
    overlap = sum((first_bigrams & second_bigrams).values())
    return 2.0 * overlap / total


@dataclass
class ScanReport:
    similarity_score: float
    source_matches: List[Dict] = field(default_factory=list)


class SimilarityScanner:
    """Scores content against an internal corpus of other submissions"""

    def __init__(self, max_matches: int = 3, min_match_percentage: float = 5.0):
        self.max_matches = max_matches
        self.min_match_percentage = min_match_percentage

    def scan(
        self, content: str, corpus: Sequence[Tuple[str, str, str]]
    ) -> ScanReport:
        """
        ``corpus`` holds ``(submission_id, title, body)`` rows. The score is
        the best single match as a percentage; matches below
        ``min_match_percentage`` are not reported as sources.
        """
        scored = []
        for source_id, title, body in corpus:
            percentage = round(dice_coefficient(content, body) * 100, 2)
            scored.append((percentage, source_id, title))

        if not scored:
            return ScanReport(similarity_score=0.0)

        scored.sort(key=lambda item: item[0], reverse=True)
        matches = [
            {"type": "internal", "submissionId": source_id, "title": title, "percentage": percentage}
            for percentage, source_id, title in scored[: self.max_matches]
            if percentage > self.min_match_percentage
        ]
        return ScanReport(similarity_score=min(scored[0][0], 100.0), source_matches=matches)
