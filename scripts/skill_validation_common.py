#!/usr/bin/env python3
"""
Skill Audit - Common Module

Shared validation infrastructure for the skill audit scripts.
This module contains:
- Type definitions (Severity, Issue, GateResult, SkillReport, BatchReport)
- Common constants (exit codes, limits, skip directories)
- Utility functions (grading, colors)

All gates and formatters import from this module to ensure consistency.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

# =============================================================================
# Type Definitions
# =============================================================================

# Only two severities exist:
# - error: blocks validation (exit code 1)
# - warning: always reported, never blocks
Severity = Literal["error", "warning"]

GateName = Literal["structure", "content", "quality", "integration"]

# Gate execution order
GATE_NAMES: tuple[GateName, ...] = ("structure", "content", "quality", "integration")

# =============================================================================
# Exit Codes
# =============================================================================

EXIT_OK = 0  # No errors (warnings allowed)
EXIT_ERRORS = 1  # One or more errors

# =============================================================================
# Common Constants
# =============================================================================

# Primary document of every skill package
SKILL_DOCUMENT = "SKILL.md"

# Batch JSON key holding the run totals
BATCH_SUMMARY_KEY = "summary"

# Name limits
MAX_NAME_LENGTH = 64
MAX_DESCRIPTION_LENGTH = 1024

# Directories to skip when scanning (cache dirs, hidden dirs, etc.)
SKIP_DIRS = {
    ".ruff_cache",
    ".mypy_cache",
    ".git",
    "__pycache__",
    ".venv",
    "node_modules",
    ".pytest_cache",
    ".tox",
    "dist",
    "build",
}

# Grade bands (inclusive upper bound on warnings, zero errors)
GRADE_A_MAX_WARNINGS = 0
GRADE_B_MAX_WARNINGS = 2
GRADE_C_MAX_WARNINGS = 5

# =============================================================================
# Data Classes
# =============================================================================


@dataclass(frozen=True)
class Package:
    """A skill directory under validation.

    Attributes:
        name: Package name (directory base name)
        root_path: Path to the package directory
    """

    name: str
    root_path: Path

    @classmethod
    def from_path(cls, path: Path) -> Package:
        return cls(name=path.name, root_path=path)

    @property
    def document_path(self) -> Path:
        return self.root_path / SKILL_DOCUMENT


@dataclass(frozen=True)
class AuditConfig:
    """Settings shared by every package in a run.

    Attributes:
        skills_root: Directory holding one subdirectory per skill
        registry_path: Central registry document (None = <skills_root>/../README.md)
        gates: Gates to run, in order; Structure prerequisites always run
        jobs: Worker threads for batch mode (1 = sequential)
    """

    skills_root: Path
    registry_path: Path | None = None
    gates: tuple[GateName, ...] = GATE_NAMES
    jobs: int = 1

    @property
    def registry(self) -> Path:
        if self.registry_path is not None:
            return self.registry_path
        return self.skills_root.parent / "README.md"


@dataclass(frozen=True)
class Issue:
    """Single validation finding.

    Attributes:
        code: Stable short identifier (e.g. E002, W303)
        message: Human-readable description
        fix: Suggested remediation
    """

    code: str
    message: str
    fix: str

    @property
    def severity(self) -> Severity:
        return severity_of(self.code)

    def to_dict(self) -> dict[str, str]:
        """Convert to dictionary for JSON serialization."""
        return {"code": self.code, "message": self.message, "fix": self.fix}


@dataclass(frozen=True)
class GateResult:
    """Immutable outcome of one gate invocation.

    Attributes:
        gate: Name of the gate that produced the result
        errors: Error issues in detection order
        warnings: Warning issues in detection order
        passed: Labels of checks that succeeded
        halt: True when a prerequisite is missing and later gates must not run
    """

    gate: str
    errors: tuple[Issue, ...] = ()
    warnings: tuple[Issue, ...] = ()
    passed: tuple[str, ...] = ()
    halt: bool = False


class GateCollector:
    """Accumulates findings inside a single gate, then freezes them.

    Usage:
        collector = GateCollector("content")
        collector.add(issue("E103", "..."))
        collector.passed("'name' field present")
        return collector.result()
    """

    def __init__(self, gate: str) -> None:
        self.gate = gate
        self._errors: list[Issue] = []
        self._warnings: list[Issue] = []
        self._passed: list[str] = []

    def add(self, found: Issue) -> None:
        if found.severity == "error":
            self._errors.append(found)
        else:
            self._warnings.append(found)

    def passed(self, label: str) -> None:
        self._passed.append(label)

    @property
    def error_count(self) -> int:
        return len(self._errors)

    def result(self, halt: bool = False) -> GateResult:
        return GateResult(
            gate=self.gate,
            errors=tuple(self._errors),
            warnings=tuple(self._warnings),
            passed=tuple(self._passed),
            halt=halt,
        )


@dataclass
class SkillReport:
    """Complete validation report for one skill.

    The score is derived from the issue counts only, so it always agrees
    with the two lists.
    """

    name: str
    errors: list[Issue] = field(default_factory=list)
    warnings: list[Issue] = field(default_factory=list)
    passed: list[str] = field(default_factory=list)

    @classmethod
    def from_gate_results(cls, name: str, results: list[GateResult]) -> SkillReport:
        """Merge gate results in gate order into a fresh report."""
        report = cls(name=name)
        for result in results:
            report.errors.extend(result.errors)
            report.warnings.extend(result.warnings)
            report.passed.extend(result.passed)
        return report

    @property
    def score(self) -> str:
        return calculate_skill_grade(len(self.errors), len(self.warnings))

    @property
    def valid(self) -> bool:
        return not self.errors

    @property
    def exit_code(self) -> int:
        return EXIT_ERRORS if self.errors else EXIT_OK

    def codes(self) -> list[str]:
        """All issue codes, errors first."""
        return [i.code for i in self.errors] + [i.code for i in self.warnings]

    def to_dict(self) -> dict[str, object]:
        """Convert to dictionary for JSON serialization."""
        return {
            "skill": self.name,
            "score": self.score,
            "valid": self.valid,
            "summary": {
                "passed": len(self.passed),
                "warnings": len(self.warnings),
                "errors": len(self.errors),
            },
            "passed": list(self.passed),
            "warnings": [i.to_dict() for i in self.warnings],
            "errors": [i.to_dict() for i in self.errors],
        }


@dataclass
class BatchReport:
    """Reports for every skill under a root, keyed by skill name."""

    per_package: dict[str, SkillReport] = field(default_factory=dict)

    @classmethod
    def from_reports(cls, reports: list[SkillReport]) -> BatchReport:
        """Build a batch keyed and ordered by skill name."""
        ordered = sorted(reports, key=lambda r: r.name)
        return cls(per_package={r.name: r for r in ordered})

    @property
    def total_errors(self) -> int:
        return sum(len(r.errors) for r in self.per_package.values())

    @property
    def total_warnings(self) -> int:
        return sum(len(r.warnings) for r in self.per_package.values())

    @property
    def exit_code(self) -> int:
        return EXIT_ERRORS if self.total_errors > 0 else EXIT_OK

    def to_dict(self) -> dict[str, object]:
        """Convert to dictionary for JSON serialization.

        Skill names are top-level keys next to the 'summary' totals. A skill
        directory named 'summary' (reported as reserved, E004) is keyed as
        'summary/' instead; directory names cannot contain '/', so that key
        never collides with another skill.
        """
        output: dict[str, object] = {}
        for name, report in self.per_package.items():
            key = f"{name}/" if name == BATCH_SUMMARY_KEY else name
            output[key] = report.to_dict()
        output[BATCH_SUMMARY_KEY] = {
            "skills": len(self.per_package),
            "errors": self.total_errors,
            "warnings": self.total_warnings,
        }
        return output


# =============================================================================
# Utility Functions
# =============================================================================


def severity_of(code: str) -> Severity:
    """Error codes start with 'E', warning codes with 'W'."""
    return "error" if code.startswith("E") else "warning"


def calculate_skill_grade(errors: int, warnings: int) -> str:
    """Convert error and warning counts to a letter grade.

    Grade scale:
    - F : any error
    - A : no warnings
    - B : 1-2 warnings
    - C : 3-5 warnings
    - D : more than 5 warnings
    """
    if errors > 0:
        return "F"
    elif warnings <= GRADE_A_MAX_WARNINGS:
        return "A"
    elif warnings <= GRADE_B_MAX_WARNINGS:
        return "B"
    elif warnings <= GRADE_C_MAX_WARNINGS:
        return "C"
    else:
        return "D"


# =============================================================================
# Color Formatting (for terminal output)
# =============================================================================

# ANSI color codes
COLORS = {
    "error": "\033[91m",  # Red
    "warning": "\033[93m",  # Yellow
    "passed": "\033[92m",  # Green
    "info": "\033[90m",  # Gray
    "RESET": "\033[0m",  # Reset
    "BOLD": "\033[1m",  # Bold
}

GRADE_COLORS = {"A": "passed", "B": "passed", "C": "warning", "D": "warning", "F": "error"}


def colors_enabled() -> bool:
    """Colors are on unless the NO_COLOR convention is in effect."""
    return "NO_COLOR" not in os.environ


def colorize(text: str, level: str) -> str:
    """Apply color to text based on level."""
    if not colors_enabled():
        return text
    color = COLORS.get(level, "")
    return f"{color}{text}{COLORS['RESET']}"
