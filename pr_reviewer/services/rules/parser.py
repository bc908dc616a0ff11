"""Parser for Cursor rule files (.cursor/rules/*.mdc, AGENTS.md, .cursorrules)."""

import functools
import os
import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import Any

import structlog
import yaml

from pr_reviewer.core.exceptions import RuleParseError

logger = structlog.get_logger()


class RuleType(str, Enum):
    ALWAYS = "always"
    AUTO_ATTACHED = "auto_attached"
    AGENT_REQUESTED = "agent_requested"
    MANUAL = "manual"


@dataclass
class CursorRule:
    """A single project rule."""

    id: str
    type: RuleType
    content: str
    file_path: str
    description: str | None = None
    globs: list[str] = field(default_factory=list)
    always_apply: bool = False
    referenced_files: list[str] = field(default_factory=list)


@dataclass
class ParsedRuleFile:
    """Front matter and body of an .mdc file."""

    description: str | None
    globs: list[str]
    always_apply: bool
    content: str
    referenced_files: list[str]


@dataclass
class CursorRulesConfig:
    """Everything found in the repository that guides the review."""

    project_rules: list[CursorRule] = field(default_factory=list)
    user_rules: list[CursorRule] = field(default_factory=list)
    agents_markdown: str | None = None
    legacy_rules: str | None = None

    def has_rules(self) -> bool:
        return bool(
            self.project_rules or self.user_rules or self.agents_markdown or self.legacy_rules
        )

    @property
    def guidelines(self) -> list[str]:
        """Free-form guideline documents, in prompt order."""
        return [text for text in (self.agents_markdown, self.legacy_rules) if text]


def _translate_glob(pattern: str) -> str:
    """Regex source for a glob whose wildcards stop at ``/`` except ``**``."""
    parts: list[str] = []
    i, n = 0, len(pattern)
    while i < n:
        char = pattern[i]
        segment_start = i == 0 or pattern[i - 1] == "/"
        if pattern.startswith("**/", i) and segment_start:
            parts.append("(?:[^/]*/)*")
            i += 3
            continue
        if pattern.startswith("**", i) and segment_start and i + 2 == n:
            parts.append(".*")
            i += 2
            continue
        if char == "*":
            parts.append("[^/]*")
        elif char == "?":
            parts.append("[^/]")
        elif char == "[" and "]" in pattern[i + 2 :]:
            end = pattern.index("]", i + 2)
            body = pattern[i + 1 : end]
            if body.startswith("!"):
                body = "^" + body[1:]
            parts.append(f"[{body}]")
            i = end + 1
            continue
        elif char == "{" and "}" in pattern[i:]:
            end = pattern.index("}", i)
            options = pattern[i + 1 : end].split(",")
            parts.append("(?:" + "|".join(_translate_glob(o) for o in options) + ")")
            i = end + 1
            continue
        else:
            parts.append(re.escape(char))
        i += 1
    return "".join(parts)


@functools.lru_cache(maxsize=256)
def _compile_glob(pattern: str) -> re.Pattern[str]:
    return re.compile(rf"\A{_translate_glob(pattern)}\Z")


def match_glob(path: str, pattern: str) -> bool:
    """
    Match a repository path against a glob pattern.

    ``*`` and ``?`` never cross a ``/``; ``**`` spans directories, and a
    leading ``**/`` also matches files at the repository root, so
    ``**/*.py`` matches both ``setup.py`` and ``pkg/mod.py``. A pattern
    without a ``/`` is matched against the file name alone, so
    ``*.min.js`` excludes minified files in any directory.
    """
    if "/" not in pattern:
        return _compile_glob(pattern).match(PurePosixPath(path).name) is not None
    return _compile_glob(pattern).match(path) is not None


def match_any(path: str, patterns: list[str]) -> bool:
    return any(match_glob(path, pattern) for pattern in patterns)


class CursorRulesParser:
    """Reads rule files from a checked-out repository."""

    FRONT_MATTER_PATTERN = re.compile(r"\A---\s*\n(.*?)\n---\s*(?:\n|\Z)", re.DOTALL)
    REFERENCE_PATTERN = re.compile(r"@([a-zA-Z0-9._/-]+\.[a-zA-Z0-9]+)")
    RULE_EXTENSION = ".mdc"

    def __init__(self, base_path: str | Path) -> None:
        self.base_path = Path(base_path)

    def parse_all_rules(self, custom_path: str | None = None) -> CursorRulesConfig:
        """Collect project rules, AGENTS.md and the legacy .cursorrules file."""
        config = CursorRulesConfig()
        config.project_rules = self._parse_project_rules(custom_path)
        config.agents_markdown = self._read_optional(self.base_path / "AGENTS.md")
        config.legacy_rules = self._read_optional(self.base_path / ".cursorrules")

        logger.info(
            "Parsed rules",
            project_rules=len(config.project_rules),
            has_agents_markdown=config.agents_markdown is not None,
            has_legacy_rules=config.legacy_rules is not None,
        )
        return config

    def _parse_project_rules(self, custom_path: str | None) -> list[CursorRule]:
        if custom_path:
            rules_dir = Path(custom_path)
            if not rules_dir.is_absolute():
                rules_dir = self.base_path / rules_dir
        else:
            rules_dir = self.base_path / ".cursor" / "rules"

        if not rules_dir.is_dir():
            logger.debug("No rules directory", path=str(rules_dir))
            return []

        rules: list[CursorRule] = []
        self._parse_rules_in_directory(rules_dir, rules)
        return rules

    def _parse_rules_in_directory(self, directory: Path, rules: list[CursorRule]) -> None:
        try:
            entries = sorted(directory.iterdir())
        except OSError as e:
            logger.warning("Could not read rules directory", path=str(directory), error=str(e))
            return

        for entry in entries:
            if entry.is_dir():
                self._parse_rules_in_directory(entry, rules)
            elif entry.is_file() and entry.name.endswith(self.RULE_EXTENSION):
                rule = self._parse_rule_file(entry)
                if rule is not None:
                    rules.append(rule)

    def _parse_rule_file(self, path: Path) -> CursorRule | None:
        try:
            parsed = self.parse_mdc_content(path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, RuleParseError) as e:
            logger.warning("Could not parse rule file", path=str(path), error=str(e))
            return None

        relative_path = os.path.relpath(path, self.base_path)
        return CursorRule(
            id=self.generate_rule_id(relative_path),
            type=self.determine_rule_type(parsed),
            content=parsed.content,
            file_path=relative_path,
            description=parsed.description,
            globs=parsed.globs,
            always_apply=parsed.always_apply,
            referenced_files=parsed.referenced_files,
        )

    def parse_mdc_content(self, text: str) -> ParsedRuleFile:
        """
        Split an .mdc document into front matter and markdown body.

        Raises:
            RuleParseError: If the front matter is not a mapping.
        """
        metadata: dict[str, Any] = {}
        body = text

        match = self.FRONT_MATTER_PATTERN.match(text)
        if match:
            metadata = self._load_front_matter(match.group(1))
            body = text[match.end() :]

        description = metadata.get("description")
        return ParsedRuleFile(
            description=str(description) if description else None,
            globs=self._normalize_globs(metadata.get("globs")),
            always_apply=self._coerce_bool(metadata.get("alwaysApply")),
            content=body.strip(),
            referenced_files=self.REFERENCE_PATTERN.findall(body),
        )

    def _load_front_matter(self, raw: str) -> dict[str, Any]:
        try:
            data = yaml.safe_load(raw)
        except yaml.YAMLError:
            # Cursor writes unquoted globs such as `globs: *.ts`, which YAML
            # reads as an alias. Fall back to plain `key: value` lines.
            data = self._load_loose_front_matter(raw)

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise RuleParseError("Front matter must be a mapping", details={"front_matter": raw})
        return data

    @staticmethod
    def _load_loose_front_matter(raw: str) -> dict[str, Any]:
        data: dict[str, Any] = {}
        for line in raw.splitlines():
            key, sep, value = line.partition(":")
            if sep and key.strip():
                data[key.strip()] = value.strip().strip("\"'")
        return data

    @staticmethod
    def _normalize_globs(value: Any) -> list[str]:
        if value is None:
            return []
        if isinstance(value, str):
            return [g.strip() for g in value.split(",") if g.strip()]
        if isinstance(value, list):
            return [str(g).strip() for g in value if str(g).strip()]
        return []

    @staticmethod
    def _coerce_bool(value: Any) -> bool:
        if isinstance(value, str):
            return value.strip().lower() == "true"
        return bool(value)

    @staticmethod
    def determine_rule_type(parsed: ParsedRuleFile) -> RuleType:
        if parsed.always_apply:
            return RuleType.ALWAYS
        if parsed.globs:
            return RuleType.AUTO_ATTACHED
        if parsed.description:
            return RuleType.AGENT_REQUESTED
        return RuleType.MANUAL

    @staticmethod
    def generate_rule_id(relative_path: str) -> str:
        rule_id = relative_path.replace("\\", "/")
        rule_id = re.sub(r"^\.cursor/rules/", "", rule_id)
        rule_id = re.sub(r"\.mdc$", "", rule_id)
        return re.sub(r"[^a-zA-Z0-9_-]", "_", rule_id)

    def _read_optional(self, path: Path) -> str | None:
        if not path.is_file():
            return None
        try:
            return path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Could not read rules file", path=str(path), error=str(e))
            return None

    def filter_rules_for_files(
        self, rules: list[CursorRule], file_paths: list[str]
    ) -> list[CursorRule]:
        """Keep the rules that apply to at least one of the changed files."""
        applicable = []
        for rule in rules:
            if rule.type == RuleType.ALWAYS or rule.always_apply:
                applicable.append(rule)
            elif rule.type == RuleType.AUTO_ATTACHED:
                if any(match_any(path, rule.globs) for path in file_paths):
                    applicable.append(rule)
            elif rule.type == RuleType.AGENT_REQUESTED:
                applicable.append(rule)
        return applicable

    def read_referenced_files(self, rule: CursorRule) -> dict[str, str]:
        files: dict[str, str] = {}
        for name in rule.referenced_files:
            content = self._read_optional(self.base_path / name)
            if content is not None:
                files[name] = content
        return files

    def find_nested_rules_directories(self) -> list[str]:
        """List every nested ``.cursor/rules`` directory below the base path."""
        directories: list[str] = []
        for root, dirs, _files in os.walk(self.base_path):
            dirs.sort()
            for name in dirs:
                rules_path = Path(root) / name / ".cursor" / "rules"
                if rules_path.is_dir():
                    directories.append(str(rules_path))
        return directories
