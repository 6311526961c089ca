#!/usr/bin/env python3
"""
Skill Audit - Gates

Four ordered check groups, each a function with the same shape:

    gate(package, document, config) -> GateResult

- Structure: directory, SKILL.md, name format, reserved names
- Content: header fields and required sections
- Quality: length, code blocks, workflow, topic ownership, links,
  reference examples, validation scripts (warnings only)
- Integration: registry listing and Related skill existence (warnings only)

Gates never raise for bad input; every finding becomes an Issue.
"""

from __future__ import annotations

import os
from collections import Counter
from collections.abc import Callable, Iterator
from pathlib import Path

from skill_document import (
    HEADER_MARKER,
    Document,
    DocumentUnavailable,
    extract_section,
    find_heading,
    load_document,
)
from skill_rules import (
    AUXILIARY_TEXT_EXTENSIONS,
    CHECKLIST_ITEM_PATTERN,
    EXCLUDED_SUBTREES,
    FIRST_PERSON_PATTERNS,
    HELP_MARKERS,
    IDEAL_BODY_LINES,
    JSON_MARKERS,
    LOCATION_FIELD,
    MAX_BODY_LINES,
    MAX_CODE_BLOCK_LINES,
    MAX_VIOLATIONS_PER_OWNER,
    MIN_CHECKLIST_ITEMS,
    NAME_PATTERN,
    REFERENCE_CODE_EXTENSIONS,
    REFERENCE_DIR,
    REQUIRED_SECTIONS,
    RESERVED_NAMES,
    SCRIPTS_DIR,
    USAGE_FIELD,
    VALIDATION_SCRIPT_PREFIXES,
    WORKFLOW_NUMBERED_ITEM,
    WORKFLOW_ORDINAL_HEADING,
    BoundaryHit,
    extract_links,
    extract_related_names,
    find_boundary_violations,
    find_code_blocks,
    header_lines,
    issue,
    local_link_path,
    mask_code_blocks,
    registry_lists,
    unquoted_colon_key,
)
from skill_validation_common import (
    MAX_DESCRIPTION_LENGTH,
    MAX_NAME_LENGTH,
    SKILL_DOCUMENT,
    SKIP_DIRS,
    AuditConfig,
    GateCollector,
    GateName,
    GateResult,
    Package,
)

Gate = Callable[[Package, Document, AuditConfig], GateResult]


def _read_text(path: Path) -> str | None:
    """Read an auxiliary file; unreadable files are skipped by the caller."""
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError):
        return None


def _exists(path: Path) -> bool:
    # os.path swallows every OSError (ENAMETOOLONG, EACCES, ...) and reports False
    return os.path.exists(path)


def _is_dir(path: Path) -> bool:
    return os.path.isdir(path)


def _walk_files(directory: Path) -> list[Path]:
    """Every file below directory, sorted; unreadable subdirectories are skipped."""
    found: list[Path] = []
    for dirpath, dirnames, filenames in os.walk(directory):
        dirnames[:] = [d for d in dirnames if d not in SKIP_DIRS]
        found.extend(Path(dirpath) / filename for filename in filenames)
    return sorted(found)


def _relative(package: Package, path: Path) -> str:
    return path.relative_to(package.root_path).as_posix()


# =============================================================================
# Structure Gate
# =============================================================================


def check_prerequisites(package: Package) -> tuple[GateResult, Document | None]:
    """Structure checks 1-2: the directory and its SKILL.md.

    These always run. When either fails the result halts the pipeline and
    no document is returned.
    """
    collector = GateCollector("structure")

    if not _is_dir(package.root_path):
        collector.add(issue("E001", f"Skill directory not found: {package.root_path}"))
        return collector.result(halt=True), None
    collector.passed("Skill directory exists")

    try:
        document = load_document(package)
    except DocumentUnavailable as e:
        collector.add(issue("E002", f"{e} in skill '{package.name}'"))
        return collector.result(halt=True), None
    collector.passed(f"{SKILL_DOCUMENT} exists")

    return collector.result(), document


def structure_gate(package: Package, document: Document, config: AuditConfig) -> GateResult:
    """Structure checks 3-4: name format and reserved names."""
    collector = GateCollector("structure")
    name = package.name

    if len(name) > MAX_NAME_LENGTH or not NAME_PATTERN.match(name):
        collector.add(
            issue(
                "E003",
                f"Skill name '{name}' must start with a lowercase letter, use only lowercase "
                f"letters, digits and hyphens, and be at most {MAX_NAME_LENGTH} characters",
            )
        )
        return collector.result()
    collector.passed(f"Skill name valid: {name}")

    if name in RESERVED_NAMES:
        collector.add(issue("E004", f"Skill name '{name}' is reserved"))
        return collector.result()
    collector.passed("Skill name not reserved")

    return collector.result()


# =============================================================================
# Content Gate
# =============================================================================


def _check_name_field(fields: dict[str, str], package: Package, collector: GateCollector) -> None:
    if "name" not in fields:
        collector.add(issue("E103", "Header has no 'name' field"))
        return
    if fields["name"] != package.name:
        collector.add(
            issue("E104", f"'name' field '{fields['name']}' does not match directory name '{package.name}'")
        )
        return
    collector.passed(f"'name' field matches directory: {package.name}")


def _check_description_field(fields: dict[str, str], collector: GateCollector) -> None:
    if "description" not in fields:
        collector.add(issue("E105", "Header has no 'description' field"))
        return
    description = fields["description"]

    if len(description) > MAX_DESCRIPTION_LENGTH:
        collector.add(
            issue("E106", f"Description is {len(description)} characters (max {MAX_DESCRIPTION_LENGTH})")
        )
    else:
        collector.passed(f"Description length OK ({len(description)} chars)")

    for pattern in FIRST_PERSON_PATTERNS:
        match = pattern.search(description)
        if match:
            collector.add(issue("E107", f"Description uses first person: '{match.group(0)}'"))
            return
    collector.passed("Description written in third person")


def _check_sections(body: str, collector: GateCollector) -> None:
    for rule in REQUIRED_SECTIONS:
        if find_heading(body, rule.pattern) is None:
            collector.add(issue(rule.code, f"{SKILL_DOCUMENT} has no '{rule.label}' heading"))
        else:
            collector.passed(f"Section present: {rule.label}")

    checklist = extract_section(body, "Checklist")
    if checklist is None:
        return
    items = len(CHECKLIST_ITEM_PATTERN.findall(mask_code_blocks(checklist)))
    if items < MIN_CHECKLIST_ITEMS:
        collector.add(issue("W101", f"Checklist has {items} item(s) (minimum {MIN_CHECKLIST_ITEMS})"))
    else:
        collector.passed(f"Checklist has {items} items")


def _malformed_header_message(raw_text: str) -> str:
    """Say why the header block was rejected, as precisely as the text allows."""
    lines = raw_text.splitlines()[1:]
    closing = next((i for i, line in enumerate(lines) if line.strip() == HEADER_MARKER), None)
    if closing is None:
        return f"{SKILL_DOCUMENT} header block has no closing '{HEADER_MARKER}' line"
    key = unquoted_colon_key("\n".join(lines[:closing]))
    if key is not None:
        return (
            f"{SKILL_DOCUMENT} header block could not be parsed: "
            f"the '{key}' value contains ': ' and must be quoted"
        )
    return f"{SKILL_DOCUMENT} header block could not be parsed as a YAML mapping"


def content_gate(package: Package, document: Document, config: AuditConfig) -> GateResult:
    """Validate header fields and required body sections."""
    collector = GateCollector("content")

    if document.header_status == "missing":
        collector.add(issue("E101", f"{SKILL_DOCUMENT} does not start with a '---' header block"))
    elif document.header_status == "malformed" or document.header_fields is None:
        collector.add(issue("E102", _malformed_header_message(document.raw_text)))
    else:
        fields = document.header_fields
        collector.passed("Header block parsed")
        _check_name_field(fields, package, collector)
        _check_description_field(fields, collector)
        if "allowed-tools" not in fields:
            collector.add(issue("E108", "Header has no 'allowed-tools' field"))
        else:
            collector.passed("'allowed-tools' field present")

    # Section checks run against the body even without a usable header
    _check_sections(document.body, collector)

    return collector.result()


# =============================================================================
# Quality Gate
# =============================================================================


def _check_length(document: Document, collector: GateCollector) -> None:
    total_lines = len(document.body.splitlines())
    if total_lines > MAX_BODY_LINES:
        collector.add(
            issue(
                "W301",
                f"{SKILL_DOCUMENT} body has {total_lines} lines (max {MAX_BODY_LINES}). "
                "Move detailed content to supporting files.",
            )
        )
    elif total_lines > IDEAL_BODY_LINES:
        collector.add(
            issue("W302", f"{SKILL_DOCUMENT} body has {total_lines} lines (ideal: under {IDEAL_BODY_LINES})")
        )
    else:
        collector.passed(f"{SKILL_DOCUMENT} line count OK ({total_lines} lines)")


def _check_code_blocks(document: Document, collector: GateCollector) -> None:
    long_blocks = 0
    for block in find_code_blocks(document.body):
        if block.line_count > MAX_CODE_BLOCK_LINES:
            long_blocks += 1
            line = block.start_line + document.body_line_offset
            collector.add(
                issue(
                    "W303",
                    f"Code block at line {line} has {block.line_count} lines (max {MAX_CODE_BLOCK_LINES})",
                )
            )
    if not long_blocks:
        collector.passed("Code blocks within length limit")


def _check_workflow(document: Document, collector: GateCollector) -> None:
    workflow = extract_section(document.body, "Workflow")
    if workflow is None:
        return
    masked = mask_code_blocks(workflow)
    if WORKFLOW_ORDINAL_HEADING.search(masked) or WORKFLOW_NUMBERED_ITEM.search(masked):
        collector.passed("Workflow has ordered steps")
    else:
        collector.add(issue("W304", "Workflow section has no numbered steps or ordinal sub-headings"))


def iter_auxiliary_files(package: Package) -> Iterator[Path]:
    """Auxiliary text files in sorted order, excluding SKILL.md and example subtrees."""
    root = package.root_path
    for dirpath, dirnames, filenames in os.walk(root):
        current = Path(dirpath)
        at_root = current == root
        dirnames[:] = sorted(
            d
            for d in dirnames
            if d not in SKIP_DIRS and not d.startswith(".") and not (at_root and d in EXCLUDED_SUBTREES)
        )
        for filename in sorted(filenames):
            if at_root and filename == SKILL_DOCUMENT:
                continue
            path = current / filename
            if path.suffix.lower() in AUXILIARY_TEXT_EXTENSIONS:
                yield path


def _check_boundaries(package: Package, document: Document, collector: GateCollector) -> None:
    scanned: list[tuple[str, list[BoundaryHit]]] = [
        (SKILL_DOCUMENT, find_boundary_violations(document.raw_text, package.name, "document"))
    ]
    for path in iter_auxiliary_files(package):
        text = _read_text(path)
        if text is None:
            continue
        scanned.append((_relative(package, path), find_boundary_violations(text, package.name, "auxiliary")))

    per_owner: Counter[str] = Counter()
    for filename, hits in scanned:
        for hit in hits:
            if per_owner[hit.owner_tag] >= MAX_VIOLATIONS_PER_OWNER:
                continue
            per_owner[hit.owner_tag] += 1
            collector.add(
                issue(
                    "W305",
                    f"{filename}:{hit.line}: '{hit.excerpt}' belongs to the '{hit.owner_tag}' skill "
                    f"({hit.description})",
                )
            )
    if not per_owner:
        collector.passed("No topic ownership violations")


def _check_links(package: Package, document: Document, collector: GateCollector) -> None:
    checked = 0
    for ref in extract_links(document.body):
        path = local_link_path(ref.target)
        if path is None:
            continue
        checked += 1
        if not _exists(package.root_path / path):
            line = ref.line + document.body_line_offset
            collector.add(issue("W306", f"Broken link '{ref.target}' at line {line}"))
        else:
            collector.passed(f"Link resolves: {ref.target}")
    if not checked:
        collector.passed("No relative links to check")


def _check_reference_examples(package: Package, collector: GateCollector) -> None:
    refs_dir = package.root_path / REFERENCE_DIR
    if not _is_dir(refs_dir):
        return
    for path in _walk_files(refs_dir):
        if path.suffix.lower() not in REFERENCE_CODE_EXTENSIONS:
            continue
        text = _read_text(path)
        if text is None:
            continue
        rel = _relative(package, path)
        head = header_lines(text)
        has_location = LOCATION_FIELD.search(head) is not None
        has_usage = USAGE_FIELD.search(head) is not None
        if not has_location:
            collector.add(issue("W307", f"{rel}: header comment has no 'Location:' field"))
        if not has_usage:
            collector.add(issue("W308", f"{rel}: header comment has no 'Usage:' field"))
        if has_location and has_usage:
            collector.passed(f"Reference example header complete: {rel}")


def _check_validation_scripts(package: Package, collector: GateCollector) -> None:
    scripts_dir = package.root_path / SCRIPTS_DIR
    if not _is_dir(scripts_dir):
        return
    try:
        entries = sorted(scripts_dir.iterdir())
    except OSError:
        return
    for path in entries:
        if not os.path.isfile(path) or not path.stem.lower().startswith(VALIDATION_SCRIPT_PREFIXES):
            continue
        text = _read_text(path)
        if text is None:
            continue
        rel = _relative(package, path)
        if any(marker in text for marker in HELP_MARKERS):
            collector.passed(f"Validation script supports help: {rel}")
        else:
            collector.add(issue("W309", f"{rel}: no help flag (--help) advertised"))
        if any(marker in text for marker in JSON_MARKERS):
            collector.passed(f"Validation script supports JSON output: {rel}")
        else:
            collector.add(issue("W310", f"{rel}: no JSON output flag (--json) advertised"))


def quality_gate(package: Package, document: Document, config: AuditConfig) -> GateResult:
    """Non-blocking quality checks; every finding is a warning."""
    collector = GateCollector("quality")
    _check_length(document, collector)
    _check_code_blocks(document, collector)
    _check_workflow(document, collector)
    _check_boundaries(package, document, collector)
    _check_links(package, document, collector)
    _check_reference_examples(package, collector)
    _check_validation_scripts(package, collector)
    return collector.result()


# =============================================================================
# Integration Gate
# =============================================================================


def integration_gate(package: Package, document: Document, config: AuditConfig) -> GateResult:
    """Registry listing and Related-skill existence; warnings only."""
    collector = GateCollector("integration")

    registry = config.registry
    registry_text = _read_text(registry) if os.path.isfile(registry) else None
    if registry_text is None:
        collector.add(issue("W403", f"Registry document not found: {registry}"))
    elif registry_lists(registry_text, package.name):
        collector.passed(f"Listed in registry: {registry.name}")
    else:
        collector.add(issue("W401", f"Skill '{package.name}' is not listed in {registry.name}"))

    related = extract_section(document.body, "Related")
    if related is None:
        return collector.result()
    for name in extract_related_names(related, package.name):
        if _is_dir(config.skills_root / name):
            collector.passed(f"Related skill exists: {name}")
        else:
            collector.add(issue("W402", f"Related skill '{name}' not found under {config.skills_root.name}/"))

    return collector.result()


# =============================================================================
# Gate Registry
# =============================================================================

GATES: dict[GateName, Gate] = {
    "structure": structure_gate,
    "content": content_gate,
    "quality": quality_gate,
    "integration": integration_gate,
}
