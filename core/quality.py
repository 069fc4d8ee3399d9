"""Quality gate evaluation.

overall_score is a weighted average of the reviewer scores (0-100) that
came back, with the weights renormalised over the reviewers that answered:

    quality_gate    0.30
    architecture    0.20
    security        0.20
    integration     0.15
    best_practices  0.15

A candidate passes when overall_score >= the configured threshold
(DEFAULTS["min_pass_score"], 80 unless overridden) and no reviewer
returned an explicit negative verdict.
"""

import math

from core.errors import ValidationError

REVIEWER_WEIGHTS = {
    "quality_gate": 0.30,
    "architecture": 0.20,
    "security": 0.20,
    "integration": 0.15,
    "best_practices": 0.15,
}


def coerce_score(value):
    """Turn a reviewer's score field into a float in [0, 100], or None."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, str):
        value = value.strip().rstrip("%")
        # "85 (good)" style answers
        value = value.split()[0] if value else value
    try:
        score = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(score):
        return None
    return max(0.0, min(100.0, score))


def overall_score(scores, weights=None):
    """Weighted average of the available scores. Raises ValidationError if none."""
    weights = weights or REVIEWER_WEIGHTS
    total = weight_sum = 0.0
    for reviewer, score in scores.items():
        if score is None:
            continue
        w = weights.get(reviewer, 0.0)
        total += w * score
        weight_sum += w
    if weight_sum == 0:
        raise ValidationError("no reviewer returned a usable score")
    return total / weight_sum


def quality_gate_pass(score, threshold, vetoes=()):
    """True when score clears threshold and nobody vetoed."""
    return score >= threshold and not vetoes
