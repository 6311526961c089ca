#!/usr/bin/env python3
"""
Skill Audit - Skill Collection Validator

Validates one skill, or every skill under a skills root, against four gates:
structure, content, quality and integration.

Usage:
    uv run python scripts/validate_skills.py my-skill
    uv run python scripts/validate_skills.py my-skill --verbose
    uv run python scripts/validate_skills.py path/to/skills/my-skill --json
    uv run python scripts/validate_skills.py my-skill --gate quality
    uv run python scripts/validate_skills.py --all --root skills/ --jobs 4
    uv run python scripts/validate_skills.py --list-rules

Environment:
    SKILL_AUDIT_ROOT      Skills root used when --root is not given (default: ./skills)
    SKILL_AUDIT_REGISTRY  Registry document used when --registry is not given
                          (default: <root>/../README.md)
    NO_COLOR              Disable ANSI colors in text output

Exit codes:
    0 - No errors (warnings never affect the exit code)
    1 - One or more errors
"""

from __future__ import annotations

import argparse
import os
import sys
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

from skill_document import locate_packages
from skill_gates import GATES, check_prerequisites
from skill_report import print_batch_results, print_json, print_results, print_rules
from skill_validation_common import (
    EXIT_ERRORS,
    EXIT_OK,
    GATE_NAMES,
    AuditConfig,
    BatchReport,
    GateResult,
    Package,
    SkillReport,
)

ROOT_ENV = "SKILL_AUDIT_ROOT"
REGISTRY_ENV = "SKILL_AUDIT_REGISTRY"
DEFAULT_ROOT = "skills"


# =============================================================================
# Pipeline
# =============================================================================


def validate_package(package: Package, config: AuditConfig) -> SkillReport:
    """Run the gates over one skill and merge their results.

    Structure prerequisites (directory and SKILL.md) always run; when they
    fail no other gate runs. The remaining gates follow config.gates.
    """
    prerequisite, document = check_prerequisites(package)
    results: list[GateResult] = [prerequisite]
    if document is not None and not prerequisite.halt:
        for gate_name in config.gates:
            results.append(GATES[gate_name](package, document, config))
    return SkillReport.from_gate_results(package.name, results)


def validate_all(packages: list[Package], config: AuditConfig) -> BatchReport:
    """Validate every package; output is identical for any number of jobs."""
    if config.jobs > 1 and len(packages) > 1:
        with ThreadPoolExecutor(max_workers=config.jobs) as executor:
            reports = list(executor.map(lambda p: validate_package(p, config), packages))
    else:
        reports = [validate_package(p, config) for p in packages]
    return BatchReport.from_reports(reports)


def resolve_package(skill: str, root: Path) -> tuple[Package, Path]:
    """Turn the SKILL argument into a package and the skills root it lives in.

    A bare name is looked up under root; anything containing a path
    separator is taken as the skill directory itself.
    """
    if "/" in skill or os.sep in skill:
        path = Path(skill)
        return Package.from_path(path), path.parent
    return Package(name=skill, root_path=root / skill), root


# =============================================================================
# Main Entry Point
# =============================================================================


def _positive_int(value: str) -> int:
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {number}")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Validate skill directories against structure, content, quality and integration rules"
    )
    parser.add_argument("skill", nargs="?", help="Skill name under the skills root, or a path to a skill directory")
    parser.add_argument("--all", action="store_true", help="Validate every skill under the skills root")
    parser.add_argument("--root", help=f"Skills root directory (default: ${ROOT_ENV} or ./{DEFAULT_ROOT})")
    parser.add_argument("--registry", help=f"Registry document (default: ${REGISTRY_ENV} or <root>/../README.md)")
    parser.add_argument("--gate", choices=GATE_NAMES, help="Run only this gate")
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Show all results including passed checks",
    )
    parser.add_argument("--json", action="store_true", help="Output as JSON")
    parser.add_argument("--list-rules", action="store_true", help="List every rule code and exit")
    parser.add_argument("--jobs", type=_positive_int, default=1, help="Validate skills in parallel (batch mode)")
    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.list_rules:
        print_rules(as_json=args.json)
        return EXIT_OK

    if args.all and args.skill:
        parser.error("pass either a skill or --all, not both")
    if not args.all and not args.skill:
        parser.error("a skill name or --all is required")

    root = Path(args.root or os.environ.get(ROOT_ENV) or DEFAULT_ROOT)
    registry_arg = args.registry or os.environ.get(REGISTRY_ENV)
    registry = Path(registry_arg) if registry_arg else None
    gates = (args.gate,) if args.gate else GATE_NAMES

    if args.all:
        if not root.is_dir():
            print(f"Error: skills root {root} does not exist", file=sys.stderr)
            return EXIT_ERRORS
        config = AuditConfig(skills_root=root, registry_path=registry, gates=gates, jobs=args.jobs)
        batch = validate_all(locate_packages(root), config)
        if args.json:
            print_json(batch)
        else:
            print_batch_results(batch, args.verbose)
        return batch.exit_code

    package, skills_root = resolve_package(args.skill, root)
    config = AuditConfig(skills_root=skills_root, registry_path=registry, gates=gates, jobs=args.jobs)
    report = validate_package(package, config)

    if args.json:
        print_json(report)
    else:
        print_results(report, args.verbose)

    return report.exit_code


if __name__ == "__main__":
    sys.exit(main())
