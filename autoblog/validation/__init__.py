"""Article validation: quality checks, grading, and reporting."""

from autoblog.validation.checks import check_html_structure, validate_article
from autoblog.validation.report import format_run_report, format_validation_report

__all__ = [
    "check_html_structure",
    "validate_article",
    "format_validation_report",
    "format_run_report",
]
