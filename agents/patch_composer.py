"""Patch composer — turns a failed review into revision feedback. Zero LLM calls."""

_SEVERITY_ORDER = {"critical": 0, "high": 1, "medium": 2, "low": 3}


def compose_feedback(findings, score, threshold, vetoes=(), degraded=()):
    """Format findings as numbered fix instructions for the next generation.

    Always returns a non-empty string, even with no findings, so a failed
    iteration can still steer the next one.
    """
    lines = [f"QA score {score:.1f} is below the pass threshold {threshold:g}."
             if score < threshold else
             f"QA score {score:.1f} meets the threshold {threshold:g} but the review was not approved."]

    if vetoes:
        lines.append(f"Rejected by: {', '.join(vetoes)}.")
    if degraded:
        lines.append(f"Not reviewed this round (reviewer unavailable): {', '.join(degraded)}.")

    ordered = sorted(findings, key=lambda f: (_SEVERITY_ORDER.get(f.severity, 4), f.reviewer))
    if ordered:
        lines.append("\nFix the following issues:\n")
        for idx, finding in enumerate(ordered, 1):
            loc = f" line {finding.line}" if finding.line else ""
            lines.append(f"{idx}. [{finding.severity.upper()}] ({finding.reviewer}){loc}: {finding.message}")
            if finding.fix:
                lines.append(f"   Fix: {finding.fix}")
    else:
        lines.append("\nNo specific findings were reported; raise overall quality: "
                     "error handling, validation, naming and adherence to the coding standards.")

    lines.append("\nFix ALL these issues while maintaining functionality.")
    return "\n".join(lines)
