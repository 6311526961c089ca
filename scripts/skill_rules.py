#!/usr/bin/env python3
"""
Skill Audit - Rule Tables

Declarative pattern tables used by the gates, plus the small pure helpers
that apply them. Everything here is data or a side-effect-free function over
strings, so each rule can be tested without touching the filesystem.

Tables:
- ISSUE_CODES: every stable issue code with its description and fix
- REQUIRED_SECTIONS: headings every SKILL.md body must contain
- FIRST_PERSON_PATTERNS: voice-style heuristics for descriptions
- BOUNDARY_RULES / DELEGATION_PATTERNS: topic ownership detection
- Link, code fence, checklist, workflow and reference header patterns

New detection heuristics are added to these tables, not to gate control flow.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Literal
from urllib.parse import unquote

from skill_validation_common import Issue

# =============================================================================
# Issue Code Catalog
# =============================================================================

# code -> (description, suggested fix)
ISSUE_CODES: dict[str, tuple[str, str]] = {
    # --- Structure gate ---
    "E001": ("Skill directory not found", "Create the skill directory under the skills root"),
    "E002": ("SKILL.md not found or unreadable", "Add a UTF-8 encoded SKILL.md to the skill directory"),
    "E003": (
        "Invalid skill name",
        "Rename the directory: start with a lowercase letter, then lowercase letters, digits or hyphens (max 64)",
    ),
    "E004": ("Reserved skill name", "Rename the directory to a name that is not reserved"),
    # --- Content gate ---
    "E101": ("Header block missing", "Start SKILL.md with a '---' delimited YAML header block"),
    "E102": (
        "Header block malformed",
        "Close the header with '---', use valid 'key: value' lines and quote values that contain ': '",
    ),
    "E103": ("'name' field missing", "Add 'name: <skill-name>' to the header"),
    "E104": ("'name' field does not match directory", "Set the 'name' field to the directory name"),
    "E105": ("'description' field missing", "Add a 'description' field to the header"),
    "E106": ("'description' field too long", "Shorten the description to at most 1024 characters"),
    "E107": (
        "'description' written in first person",
        "Describe the skill in third person (e.g. 'Generates...' instead of 'I can generate...')",
    ),
    "E108": ("'allowed-tools' field missing", "Declare the tools the skill uses with 'allowed-tools'"),
    "E111": ("Title heading missing", "Add a '# Title' heading at the top of the body"),
    "E112": ("'When to Use' section missing", "Add a '## When to Use' section"),
    "E113": ("'Workflow' section missing", "Add a '## Workflow' section"),
    "E114": ("'Guides' section missing", "Add a '## Guides' section"),
    "E115": ("'Checklist' section missing", "Add a '## Checklist' section"),
    "E116": ("'Related' section missing", "Add a '## Related' section"),
    "W101": ("Checklist has too few items", "List at least 3 checklist items"),
    # --- Quality gate ---
    "W301": ("SKILL.md body too long", "Move detailed material into references/ and link to it"),
    "W302": ("SKILL.md body above ideal length", "Consider moving detail into references/"),
    "W303": ("Code block too long", "Keep inline code blocks short; move full examples to references/"),
    "W304": ("Workflow has no ordered steps", "Use numbered steps or '### Step N' sub-headings in the Workflow"),
    "W305": (
        "Topic owned by another skill",
        "Delegate to the owning skill (e.g. 'use the <owner> skill') instead of duplicating its content",
    ),
    "W306": ("Broken relative link", "Fix the link target or add the missing file"),
    "W307": ("Reference example lacks 'Location:' header", "Add a 'Location:' line to the file's header comment"),
    "W308": ("Reference example lacks 'Usage:' header", "Add a 'Usage:' line to the file's header comment"),
    "W309": ("Validation script has no help flag", "Support '--help' in the validation script"),
    "W310": ("Validation script has no JSON flag", "Support '--json' output in the validation script"),
    # --- Integration gate ---
    "W401": ("Skill not listed in registry", "Add the skill to the registry document"),
    "W402": ("Related skill not found", "Fix the skill name in the Related section or create the skill"),
    "W403": ("Registry document not found", "Create the registry document or pass --registry"),
}


def issue(code: str, message: str) -> Issue:
    """Build an Issue whose fix text comes from the catalog.

    Raises:
        KeyError: if the code is not in ISSUE_CODES
    """
    _description, fix = ISSUE_CODES[code]
    return Issue(code=code, message=message, fix=fix)


# =============================================================================
# Structure Rules
# =============================================================================

NAME_PATTERN = re.compile(r"^[a-z][a-z0-9-]*$")

RESERVED_NAMES = frozenset(
    {
        "all",
        "anthropic",
        "claude",
        "default",
        "help",
        "none",
        "skill",
        "skills",
        "summary",  # batch JSON output key
    }
)

# =============================================================================
# Content Rules
# =============================================================================

# Voice-style heuristics, not grammar validation
FIRST_PERSON_PATTERNS = [
    re.compile(r"\bI\s+(?:can|will|help|am)\b", re.IGNORECASE),
    re.compile(r"\bI'm\b", re.IGNORECASE),
    re.compile(r"\bwe\s+(?:can|will)\b", re.IGNORECASE),
    re.compile(r"\blet\s+me\b", re.IGNORECASE),
]

MIN_CHECKLIST_ITEMS = 3

# A plain (unquoted) header value containing ': ' is a YAML mapping error
UNQUOTED_COLON_VALUE = re.compile(r"^([A-Za-z0-9_-]+):[ \t]+(?![\"'\[{|>])[^\n]*?:[ \t]", re.MULTILINE)


def unquoted_colon_key(header_text: str) -> str | None:
    """Key of the first header line whose unquoted value contains ': '."""
    match = UNQUOTED_COLON_VALUE.search(header_text)
    return match.group(1) if match else None


def _section_heading(title: str) -> re.Pattern[str]:
    # Level 2 or 3 heading, optionally numbered ("## 2. Workflow")
    return re.compile(rf"^(#{{2,3}})[ \t]+(?:\d+[.)][ \t]*)?{title}\b.*$", re.IGNORECASE | re.MULTILINE)


@dataclass(frozen=True)
class SectionRule:
    """A heading the SKILL.md body must contain."""

    code: str
    label: str
    pattern: re.Pattern[str]


REQUIRED_SECTIONS = [
    SectionRule("E111", "Title", re.compile(r"^(#)[ \t]+\S.*$", re.MULTILINE)),
    SectionRule("E112", "When to Use", _section_heading(r"when[ \t]+to[ \t]+use")),
    SectionRule("E113", "Workflow", _section_heading(r"workflow")),
    SectionRule("E114", "Guides", _section_heading(r"guides?")),
    SectionRule("E115", "Checklist", _section_heading(r"checklist")),
    SectionRule("E116", "Related", _section_heading(r"related(?:[ \t]+skills)?")),
]

SECTIONS_BY_LABEL = {rule.label: rule for rule in REQUIRED_SECTIONS}

CHECKLIST_ITEM_PATTERN = re.compile(r"^[ \t]*(?:[-*+]|\d+[.)])[ \t]+(?:\[[ xX]\][ \t]+)?\S", re.MULTILINE)

# =============================================================================
# Quality Rules
# =============================================================================

MAX_BODY_LINES = 300
IDEAL_BODY_LINES = 200
MAX_CODE_BLOCK_LINES = 10

# Workflow ordering: "### Step 1", "### Phase 2", "### 3. Deploy" or a numbered list
WORKFLOW_ORDINAL_HEADING = re.compile(r"^#{3,4}[ \t]+(?:(?:step|phase)[ \t]+\d+|\d+[.)])", re.IGNORECASE | re.MULTILINE)
WORKFLOW_NUMBERED_ITEM = re.compile(r"^[ \t]*\d+[.)][ \t]+\S", re.MULTILINE)

CODE_FENCE_PATTERN = re.compile(r"^[ ]{0,3}(`{3,}|~{3,})")


@dataclass(frozen=True)
class CodeBlock:
    """A fenced code region. start_line is the 1-based line of the opening fence."""

    start_line: int
    line_count: int
    closed: bool = True


def _closes_fence(fence: str, candidate: str, line: str) -> bool:
    # Closing fence: same character, at least as long, nothing after it
    return candidate[0] == fence[0] and len(candidate) >= len(fence) and line.strip() == candidate


def find_code_blocks(text: str) -> list[CodeBlock]:
    """Find fenced code regions; an unclosed fence runs to the end of the text."""
    blocks: list[CodeBlock] = []
    fence: str | None = None
    start = 0
    count = 0
    for lineno, line in enumerate(text.splitlines(), start=1):
        match = CODE_FENCE_PATTERN.match(line)
        if fence is None:
            if match:
                fence = match.group(1)
                start = lineno
                count = 0
            continue
        if match and _closes_fence(fence, match.group(1), line):
            blocks.append(CodeBlock(start, count))
            fence = None
        else:
            count += 1
    if fence is not None:
        blocks.append(CodeBlock(start, count, closed=False))
    return blocks


def mask_code_blocks(text: str) -> str:
    """Blank out fenced regions (fences included) keeping line numbers stable."""
    lines = text.splitlines()
    for block in find_code_blocks(text):
        end = block.start_line + block.line_count + (1 if block.closed else 0)
        for index in range(block.start_line - 1, min(end, len(lines))):
            lines[index] = ""
    return "\n".join(lines)


# --- Links ---

# Inline links and images: [text](target "title")
LINK_PATTERN = re.compile(r"!?\[[^\]]*\]\(\s*<?([^)\s>]+)>?(?:\s+[\"'][^\"']*[\"'])?\s*\)")
URL_SCHEME_PATTERN = re.compile(r"^[A-Za-z][A-Za-z0-9+.-]*:")

# Inline code span: a run of backticks closed by a run of the same length
INLINE_CODE_PATTERN = re.compile(r"(`+)(?!`).+?(?<!`)\1(?!`)")


@dataclass(frozen=True)
class LinkRef:
    target: str
    line: int


def mask_inline_code(line: str) -> str:
    """Blank out inline code spans, keeping column positions."""
    return INLINE_CODE_PATTERN.sub(lambda m: " " * len(m.group(0)), line)


def extract_links(text: str) -> list[LinkRef]:
    """Extract inline link targets outside fenced code and code spans, in document order."""
    masked = mask_code_blocks(text)
    refs: list[LinkRef] = []
    for lineno, line in enumerate(masked.splitlines(), start=1):
        for match in LINK_PATTERN.finditer(mask_inline_code(line)):
            refs.append(LinkRef(match.group(1), lineno))
    return refs


def local_link_path(target: str) -> str | None:
    """Return the filesystem part of a relative link, or None if it is not checked.

    External URLs, protocol-relative URLs and same-document anchors are skipped.
    """
    if target.startswith(("#", "//")) or URL_SCHEME_PATTERN.match(target):
        return None
    path = target.split("#", 1)[0].split("?", 1)[0]
    if not path:
        return None
    return unquote(path).lstrip("/") or "."


# --- Boundary violations ---

Scope = Literal["all", "document", "auxiliary"]


@dataclass(frozen=True)
class Rule:
    """Topic ownership rule.

    Attributes:
        pattern: Regex whose match signals content owned by another skill
        owner_tag: Name of the skill that owns the topic (exempt from the rule)
        description: What the owned topic is
        scope: Which files the rule applies to
    """

    pattern: re.Pattern[str]
    owner_tag: str
    description: str
    scope: Scope = "all"


BOUNDARY_RULES = [
    Rule(
        re.compile(r"\bgit\s+(?:rebase|cherry-pick|bisect|reflog|filter-branch)\b"),
        "git-workflow",
        "Git history manipulation commands",
    ),
    Rule(
        re.compile(r"\bgh\s+pr\s+(?:create|merge|checkout)\b"),
        "git-workflow",
        "Pull request lifecycle commands",
    ),
    Rule(
        re.compile(r"\bdocker(?:-compose|\s+compose)?\s+(?:build|run|push|up)\b"),
        "docker",
        "Container build and run commands",
    ),
    Rule(
        re.compile(r"\bkubectl\s+(?:apply|rollout|scale|delete)\b"),
        "kubernetes",
        "Cluster deployment commands",
    ),
    Rule(
        re.compile(r"\bpytest\s+[^\n]*--(?:cov|lf|ff|fixtures)\b"),
        "testing",
        "Test runner configuration",
    ),
    Rule(
        re.compile(r"\b(?:CREATE|ALTER|DROP)\s+(?:TABLE|INDEX)\b"),
        "database",
        "Schema migration statements",
        "document",
    ),
    Rule(
        re.compile(r"\b(?:npm\s+publish|twine\s+upload|cargo\s+publish)\b"),
        "release",
        "Package publishing commands",
    ),
    Rule(
        re.compile(r"\b(?:ruff\s+(?:check|format)|black\s+\S|eslint\s+--fix|prettier\s+--write)"),
        "code-style",
        "Formatter and linter invocations",
        "auxiliary",
    ),
]

# Text window examined on each side of a boundary match
DELEGATION_WINDOW = 80

# A match near any of these is a cross-reference, not duplicated content
DELEGATION_PATTERNS = [
    re.compile(
        r"\b(?:run|use|invoke|call|load|see)\s+(?:the\s+)?[`'\"*]*[a-z][a-z0-9-]*[`'\"*]*\s+(?:skill|tool|command|agent)\b",
        re.IGNORECASE,
    ),
    re.compile(r"\bdelegat(?:e|es|ed|ing)\s+to\b", re.IGNORECASE),
    re.compile(r"\b(?:refer|defer)s?\s+to\s+(?:the\s+)?[`'\"*]*[a-z][a-z0-9-]*", re.IGNORECASE),
    re.compile(r"\bhand(?:s|ed)?\s+off\s+to\b", re.IGNORECASE),
    re.compile(r"\bowned\s+by\b", re.IGNORECASE),
]

MAX_VIOLATIONS_PER_OWNER = 3


@dataclass(frozen=True)
class BoundaryHit:
    owner_tag: str
    description: str
    line: int
    excerpt: str


def is_delegation(text: str, start: int, end: int, window: int = DELEGATION_WINDOW) -> bool:
    """True if a delegation phrase appears within `window` chars of the match."""
    context = text[max(0, start - window) : end + window]
    return any(p.search(context) for p in DELEGATION_PATTERNS)


def find_boundary_violations(
    text: str,
    skill_name: str,
    scope: Scope,
    rules: list[Rule] | None = None,
) -> list[BoundaryHit]:
    """Find topic-ownership violations in one file's text.

    At most one hit per owner tag is returned (the first unsuppressed match),
    ordered by position in the text.
    """
    hits: dict[str, tuple[int, BoundaryHit]] = {}
    for rule in BOUNDARY_RULES if rules is None else rules:
        if rule.owner_tag == skill_name:
            continue
        if rule.scope != "all" and rule.scope != scope:
            continue
        for match in rule.pattern.finditer(text):
            if is_delegation(text, match.start(), match.end()):
                continue
            previous = hits.get(rule.owner_tag)
            if previous is None or match.start() < previous[0]:
                line = text.count("\n", 0, match.start()) + 1
                hit = BoundaryHit(rule.owner_tag, rule.description, line, match.group(0))
                hits[rule.owner_tag] = (match.start(), hit)
            break
    return [hit for _pos, hit in sorted(hits.values(), key=lambda item: item[0])]


# --- Auxiliary and reference files ---

AUXILIARY_TEXT_EXTENSIONS = {".md", ".txt", ".py", ".sh", ".bash", ".yaml", ".yml", ".json", ".toml"}

# Subtrees holding examples; excluded from boundary scanning
EXCLUDED_SUBTREES = {"references", "examples"}

REFERENCE_DIR = "references"
REFERENCE_CODE_EXTENSIONS = {".py", ".sh", ".bash", ".js", ".ts", ".go", ".rb", ".rs", ".java", ".sql"}
HEADER_SCAN_LINES = 15

_COMMENT_PREFIX = r"^[ \t]*(?:#+|//+|/?\*+|--|;+|\"\"\"|''')?[ \t]*"
LOCATION_FIELD = re.compile(_COMMENT_PREFIX + r"location[ \t]*:[ \t]*\S", re.IGNORECASE | re.MULTILINE)
USAGE_FIELD = re.compile(_COMMENT_PREFIX + r"usage[ \t]*:[ \t]*\S", re.IGNORECASE | re.MULTILINE)


def header_lines(text: str) -> str:
    return "\n".join(text.splitlines()[:HEADER_SCAN_LINES])


# --- Validation scripts ---

SCRIPTS_DIR = "scripts"
VALIDATION_SCRIPT_PREFIXES = ("validate", "check")
HELP_MARKERS = ("--help", "argparse", "click", "typer", "usage:")
JSON_MARKERS = ("--json",)

# =============================================================================
# Integration Rules
# =============================================================================

RELATED_NAME_PATTERNS = [
    re.compile(r"`([a-z][a-z0-9-]*)`"),
    re.compile(r"\*\*([a-z][a-z0-9-]*)\*\*"),
    re.compile(r"\]\((?:\.\./|(?:\./)?skills/)([a-z][a-z0-9-]*)(?:/|\))"),
]


def extract_related_names(section: str, skill_name: str) -> list[str]:
    """Skill names referenced in a Related section, in order of first mention."""
    found: list[tuple[int, str]] = []
    for pattern in RELATED_NAME_PATTERNS:
        found.extend((m.start(), m.group(1)) for m in pattern.finditer(section))
    names: list[str] = []
    for _pos, name in sorted(found):
        if name != skill_name and name not in names:
            names.append(name)
    return names


def registry_lists(registry_text: str, skill_name: str) -> bool:
    """True if the skill name appears as a whole token in the registry."""
    pattern = rf"(?<![A-Za-z0-9_-]){re.escape(skill_name)}(?![A-Za-z0-9_-])"
    return re.search(pattern, registry_text) is not None
