"""Shared fixtures for the skill audit tests: builds skill trees on disk."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
SCRIPTS_DIR = PROJECT_ROOT / "scripts"

# The scripts import each other as siblings, the same way they do when run directly
if str(SCRIPTS_DIR) not in sys.path:
    sys.path.insert(0, str(SCRIPTS_DIR))

from skill_validation_common import AuditConfig, Package  # noqa: E402

DEFAULT_DESCRIPTION = "Generates concise release notes from merged pull requests."

DEFAULT_BODY = """
# {title}

## When to Use

- A release branch is ready and needs notes.

## Workflow

1. Collect the merged pull requests.
2. Group changes by type.
3. Write the notes.

## Guides

- Keep each entry to one line.

## Checklist

- [ ] Every merged change is listed
- [ ] Breaking changes are called out
- [ ] Links point at pull requests

## Related

- Changelog conventions used by the project.
"""


def render_document(
    name: str,
    description: str = DEFAULT_DESCRIPTION,
    body: str | None = None,
    header: str | None = None,
) -> str:
    """Build SKILL.md text; `header` replaces the whole header block content."""
    if header is None:
        header = f"name: {name}\ndescription: {description}\nallowed-tools: Read, Grep, Bash\n"
    if body is None:
        body = DEFAULT_BODY.format(title=name.replace("-", " ").title())
    return f"---\n{header}---\n{body}"


class SkillTree:
    """A skills root plus registry document under a temporary directory."""

    def __init__(self, base: Path) -> None:
        self.root = base / "skills"
        self.root.mkdir()
        self.registry = base / "README.md"
        self.registry.write_text("# Skills\n\n| Skill | Purpose |\n|-------|---------|\n")

    def add(
        self,
        name: str,
        document: str | None = None,
        files: dict[str, str] | None = None,
        register: bool = True,
        with_document: bool = True,
    ) -> Path:
        skill_dir = self.root / name
        skill_dir.mkdir(parents=True, exist_ok=True)
        if with_document:
            (skill_dir / "SKILL.md").write_text(document if document is not None else render_document(name))
        for rel_path, content in (files or {}).items():
            path = skill_dir / rel_path
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content)
        if register:
            with self.registry.open("a") as f:
                f.write(f"| {name} | example |\n")
        return skill_dir

    def package(self, name: str) -> Package:
        return Package(name=name, root_path=self.root / name)

    def config(self, **overrides: object) -> AuditConfig:
        settings: dict[str, object] = {"skills_root": self.root, "registry_path": self.registry}
        settings.update(overrides)
        return AuditConfig(**settings)  # type: ignore[arg-type]


@pytest.fixture
def skill_tree(tmp_path: Path) -> SkillTree:
    return SkillTree(tmp_path)


@pytest.fixture
def document_factory():
    return render_document
