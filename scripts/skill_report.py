#!/usr/bin/env python3
"""
Skill Audit - Report Formatter

Renders SkillReport and BatchReport objects as terminal text or JSON.
Formatting functions return strings; the print_* wrappers write to stdout.
"""

from __future__ import annotations

import json

from skill_rules import ISSUE_CODES
from skill_validation_common import GRADE_COLORS, BatchReport, Issue, SkillReport, colorize, severity_of

BANNER_WIDTH = 60


def _banner(title: str) -> list[str]:
    return ["", "=" * BANNER_WIDTH, colorize(title, "BOLD"), "=" * BANNER_WIDTH]


def _format_issues(title: str, issues: list[Issue], level: str) -> list[str]:
    lines = ["", colorize(f"--- {title} ({len(issues)}) ---", level)]
    if not issues:
        lines.append("  none")
    for found in issues:
        lines.append(f"  {colorize(f'[{found.code}]', level)} {found.message}")
        lines.append(f"         Fix: {found.fix}")
    return lines


def summary_line(report: SkillReport) -> str:
    grade = colorize(report.score, GRADE_COLORS[report.score])
    return (
        f"Summary: {len(report.passed)} passed, {len(report.warnings)} warnings, "
        f"{len(report.errors)} errors | Grade: {grade}"
    )


def format_skill_report(report: SkillReport, verbose: bool = False) -> str:
    """Human-readable breakdown of one skill: passed, warnings, errors, summary."""
    lines = _banner(f"Skill Validation: {report.name}")

    if verbose:
        lines.append("")
        lines.append(colorize(f"--- PASSED ({len(report.passed)}) ---", "passed"))
        for label in report.passed:
            lines.append(f"  {colorize('✓', 'passed')} {label}")

    lines.extend(_format_issues("WARNINGS", report.warnings, "warning"))
    lines.extend(_format_issues("ERRORS", report.errors, "error"))

    lines.append("")
    lines.append("-" * BANNER_WIDTH)
    lines.append(summary_line(report))
    if report.valid and not report.warnings:
        lines.append(colorize("✓ All checks passed", "passed"))
    elif report.valid:
        lines.append(colorize("✓ Validation passed with warnings", "passed"))
    else:
        lines.append(colorize("✗ Validation failed - fix the errors above", "error"))
    return "\n".join(lines)


def format_batch_report(batch: BatchReport, verbose: bool = False) -> str:
    """One status line per skill plus totals; full breakdowns in verbose mode."""
    lines = _banner(f"Skill Validation: {len(batch.per_package)} skills")
    width = max((len(name) for name in batch.per_package), default=0)

    lines.append("")
    for name, report in batch.per_package.items():
        status = colorize("✓", "passed") if report.valid else colorize("✗", "error")
        grade = colorize(report.score, GRADE_COLORS[report.score])
        lines.append(
            f"  {status} {name.ljust(width)}  {grade}  {len(report.errors)} errors, {len(report.warnings)} warnings"
        )

    if verbose:
        for report in batch.per_package.values():
            lines.append(format_skill_report(report, verbose=True))

    lines.append("")
    lines.append("-" * BANNER_WIDTH)
    lines.append(
        f"Total: {len(batch.per_package)} skills, {batch.total_errors} errors, {batch.total_warnings} warnings"
    )
    if batch.total_errors:
        lines.append(colorize("✗ Batch validation failed", "error"))
    else:
        lines.append(colorize("✓ All skills passed", "passed"))
    return "\n".join(lines)


def format_rules() -> str:
    """Code, severity and description for every rule."""
    lines = [f"{'CODE':<6} {'SEVERITY':<8} DESCRIPTION"]
    for code, (description, _fix) in ISSUE_CODES.items():
        severity = severity_of(code)
        lines.append(f"{code:<6} {severity:<8} {description}")
    return "\n".join(lines)


def rules_to_dict() -> dict[str, dict[str, str]]:
    return {
        code: {
            "severity": severity_of(code),
            "description": description,
            "fix": fix,
        }
        for code, (description, fix) in ISSUE_CODES.items()
    }


# =============================================================================
# Output Functions
# =============================================================================


def print_results(report: SkillReport, verbose: bool = False) -> None:
    """Print validation results in human-readable format."""
    print(format_skill_report(report, verbose))
    print()


def print_batch_results(batch: BatchReport, verbose: bool = False) -> None:
    print(format_batch_report(batch, verbose))
    print()


def print_json(payload: SkillReport | BatchReport) -> None:
    """Print a report as JSON."""
    print(json.dumps(payload.to_dict(), indent=2))


def print_rules(as_json: bool = False) -> None:
    if as_json:
        print(json.dumps(rules_to_dict(), indent=2))
    else:
        print(format_rules())
