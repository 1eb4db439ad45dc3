"""Grading and human-readable report formatting for validation results."""

from autoblog.config import MAX_INTERNAL_LINKS, MAX_VALID_EXTERNAL_LINKS, MAX_WORDS, MIN_WORDS


def compute_grade(issues: list, warnings: list) -> str:
    """Compute article grade from issues and warnings.

    A+ = no issues, no warnings
    A  = no issues, some warnings
    A- = 1 issue
    B+ = 2 issues
    B  = 3 issues
    C  = 4-5 issues
    D  = 6+ issues
    """
    if len(issues) == 0 and len(warnings) == 0:
        return "A+"
    if len(issues) == 0:
        return "A"
    if len(issues) <= 1:
        return "A-"
    if len(issues) <= 2:
        return "B+"
    if len(issues) <= 3:
        return "B"
    if len(issues) <= 5:
        return "C"
    return "D"


def _status(ok: bool) -> str:
    return "PASS" if ok else "FAIL"


def format_validation_report(results: dict, title: str) -> str:
    """Format validation results as a readable CLI report."""
    wc = results["word_count"]
    h2 = results["h2_count"]
    il = results["internal_links"]
    el = results["external_links"]
    ids = results["heading_ids"]
    dup = results["duplicate_links"]

    lines = [
        f"{'='*60}",
        f"VALIDATION REPORT: {title}",
        f"{'='*60}",
        f"Grade: {results['grade']}",
        "",
        f"  [{_status(wc['pass'])}] Word count:       {wc['count']}  (target: {MIN_WORDS}-{MAX_WORDS})",
        f"  [{_status(h2['pass'])}] H2 headers:       {h2['count']}  (target: 4+)",
        f"  [{_status(not ids['missing'] and not ids['duplicates'])}] Heading anchors:  {ids['total'] - ids['missing']}/{ids['total']}",
        f"  [{_status(il['pass'])}] Internal links:   {il['count']}  (max: {MAX_INTERNAL_LINKS})",
        f"  [{_status(el['pass'])}] External links:   {el['count']}  (max: {MAX_VALID_EXTERNAL_LINKS})",
        f"  [{_status(dup['pass'])}] Unique links:     {len(dup['found'])} duplicate(s)",
        f"  [{_status(not results['html_structure']['problems'])}] Well-formed HTML",
    ]

    if results["issues"]:
        lines.append(f"\nISSUES ({len(results['issues'])}):")
        for issue in results["issues"]:
            lines.append(f"  - {issue}")

    if results.get("warnings"):
        lines.append(f"\nWARNINGS ({len(results['warnings'])}):")
        for warning in results["warnings"]:
            lines.append(f"  ~ {warning}")

    if not results["issues"] and not results.get("warnings"):
        lines.append("\nAll checks passed!")

    lines.append(f"{'='*60}")
    return "\n".join(lines)


def format_run_report(report) -> str:
    """Plain-text body for the run report sent after every generation run."""
    headline = {
        "success": "Article published",
        "failed": "Article generation failed",
        "all-topics-duplicate": "No article: every candidate topic was a duplicate",
    }.get(report.outcome, report.outcome)

    lines = [
        f"{'='*60}",
        f"RUN REPORT: {report.category}",
        f"{'='*60}",
        f"Outcome: {headline}",
    ]
    if report.article is not None:
        article = report.article
        lines += [
            f"Title:     {article.title}",
            f"Slug:      {article.slug}",
            f"Tags:      {', '.join(article.tags)}",
            f"Thumbnail: {article.thumbnail_path or '-'}",
        ]
    if report.error:
        lines.append(f"Error:     {report.error}")
    if report.logs:
        lines.append("\nSTAGES:")
        lines.extend(f"  - {line}" for line in report.logs)
    lines.append(f"{'='*60}")
    return "\n".join(lines)
