import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Literal

import structlog

logger = structlog.get_logger()


class LineType(str, Enum):
    CONTEXT = "context"
    ADDITION = "addition"
    DELETION = "deletion"


@dataclass
class DiffLine:
    """
    A single content line in a diff.

    ``diff_line_no`` is the line's position in the numbered diff shown to
    the model: added, deleted and context lines are numbered 1..N across
    the whole patch; hunk headers are not.
    """

    type: LineType
    content: str
    old_line_no: int | None = None
    new_line_no: int | None = None
    diff_line_no: int = 0

    def __str__(self) -> str:
        prefix = {
            LineType.CONTEXT: " ",
            LineType.ADDITION: "+",
            LineType.DELETION: "-",
        }[self.type]
        return f"{prefix}{self.content}"


@dataclass
class Hunk:
    """A hunk (section) of changes in a diff."""

    old_start: int
    old_count: int
    new_start: int
    new_count: int
    header: str  # The @@ line
    lines: list[DiffLine] = field(default_factory=list)


@dataclass
class FileDiff:
    """One file's section of a multi-file unified diff."""

    path: str
    status: Literal["added", "modified", "deleted", "renamed"]
    old_path: str | None = None
    hunks: list[Hunk] = field(default_factory=list)

    @property
    def additions(self) -> int:
        return sum(
            1 for hunk in self.hunks for line in hunk.lines if line.type == LineType.ADDITION
        )

    @property
    def deletions(self) -> int:
        return sum(
            1 for hunk in self.hunks for line in hunk.lines if line.type == LineType.DELETION
        )

    def to_patch_string(self) -> str:
        """Rebuild the per-file patch, in the shape the PR files API returns."""
        lines = []
        for hunk in self.hunks:
            lines.append(hunk.header)
            lines.extend(str(line) for line in hunk.lines)
        return "\n".join(lines)


def classify_line(line: str) -> LineType | None:
    """
    Classify a line inside a hunk by its first character.

    ``+++`` and ``---`` are file headers only before the first hunk, which
    the callers skip, so here they are an added ``++`` or removed ``--`` line.
    """
    if not line:
        return None
    if line.startswith("+"):
        return LineType.ADDITION
    if line.startswith("-"):
        return LineType.DELETION
    if line.startswith(" "):
        return LineType.CONTEXT
    return None


class DiffParser:
    """Parser for unified diffs, per file or whole pull request."""

    FILE_HEADER_PATTERN = re.compile(r"^diff --git a/(.*) b/(.*)$")
    OLD_FILE_PATTERN = re.compile(r"^--- (?:a/)?(.*)$")
    NEW_FILE_PATTERN = re.compile(r"^\+\+\+ (?:b/)?(.*)$")
    HUNK_HEADER_PATTERN = re.compile(r"^@@ -(\d+)(?:,(\d+))? \+(\d+)(?:,(\d+))? @@(.*)$")

    def parse(self, diff_text: str) -> list[FileDiff]:
        """
        Parse a full ``git diff`` into one FileDiff per file.

        Each file's hunks are numbered on their own, matching the per-file
        patches the model is shown.
        """
        if not diff_text.strip():
            return []

        files: list[FileDiff] = []
        bodies: list[list[str]] = []
        current: FileDiff | None = None

        for line in diff_text.split("\n"):
            file_match = self.FILE_HEADER_PATTERN.match(line)
            if file_match:
                old_path, new_path = file_match.group(1), file_match.group(2)
                current = FileDiff(
                    path=new_path,
                    status="modified",
                    old_path=old_path if old_path != new_path else None,
                )
                files.append(current)
                bodies.append([])
                continue
            if current is None:
                continue

            # File headers come before the first hunk only
            if not bodies[-1]:
                old_match = self.OLD_FILE_PATTERN.match(line)
                if old_match:
                    if old_match.group(1) == "/dev/null":
                        current.status = "added"
                    continue
                new_match = self.NEW_FILE_PATTERN.match(line)
                if new_match:
                    if new_match.group(1) == "/dev/null":
                        current.status = "deleted"
                    elif current.old_path:
                        current.status = "renamed"
                    continue
                if not self.HUNK_HEADER_PATTERN.match(line):
                    continue
            bodies[-1].append(line)

        for file_diff, body in zip(files, bodies):
            file_diff.hunks = self.parse_patch("\n".join(body))

        logger.debug("Parsed diff", files=len(files))
        return files

    def parse_patch(self, patch: str) -> list[Hunk]:
        """
        Parse the patch of a single file, as returned by the PR files API.

        The numbering of ``diff_line_no`` runs across hunks.
        """
        hunks: list[Hunk] = []
        current_hunk: Hunk | None = None
        old_line_no = 0
        new_line_no = 0
        diff_line_no = 0

        for line in patch.split("\n"):
            hunk_match = self.HUNK_HEADER_PATTERN.match(line)
            if hunk_match:
                current_hunk = self._new_hunk(hunk_match, line)
                hunks.append(current_hunk)
                old_line_no = current_hunk.old_start
                new_line_no = current_hunk.new_start
                continue

            line_type = classify_line(line)
            if line_type is None or current_hunk is None:
                continue

            diff_line_no += 1
            if line_type == LineType.ADDITION:
                current_hunk.lines.append(
                    DiffLine(
                        line_type, line[1:], new_line_no=new_line_no, diff_line_no=diff_line_no
                    )
                )
                new_line_no += 1
            elif line_type == LineType.DELETION:
                current_hunk.lines.append(
                    DiffLine(
                        line_type, line[1:], old_line_no=old_line_no, diff_line_no=diff_line_no
                    )
                )
                old_line_no += 1
            else:
                current_hunk.lines.append(
                    DiffLine(
                        line_type,
                        line[1:],
                        old_line_no=old_line_no,
                        new_line_no=new_line_no,
                        diff_line_no=diff_line_no,
                    )
                )
                old_line_no += 1
                new_line_no += 1

        return hunks

    def _new_hunk(self, match: re.Match[str], header: str) -> Hunk:
        return Hunk(
            old_start=int(match.group(1)),
            old_count=int(match.group(2) or 1),
            new_start=int(match.group(3)),
            new_count=int(match.group(4) or 1),
            header=header,
        )


class DiffLineMapper:
    """
    Translates numbered-diff line numbers reported by the model into file
    line numbers that GitHub accepts for review comments.
    """

    SEARCH_RADIUS = 5

    def __init__(self, patch: str) -> None:
        self.hunks = DiffParser().parse_patch(patch)
        self._lines = [line for hunk in self.hunks for line in hunk.lines]
        self._by_diff_line = {line.diff_line_no: line for line in self._lines}

    def to_file_line(self, diff_line: int) -> int | None:
        """File line for an added or context line; ``None`` for deletions."""
        line = self._by_diff_line.get(diff_line)
        if line is None:
            logger.debug("Diff line not found in patch", diff_line=diff_line)
            return None
        if line.type == LineType.DELETION:
            logger.debug("Cannot comment on deleted line", diff_line=diff_line)
            return None
        return line.new_line_no

    def valid_lines(self) -> list[int]:
        """File lines a review comment can be attached to."""
        return [
            line.new_line_no
            for line in self._lines
            if line.type != LineType.DELETION and line.new_line_no is not None
        ]

    def changed_lines(self) -> list[int]:
        """File lines added by the patch."""
        return [
            line.new_line_no
            for line in self._lines
            if line.type == LineType.ADDITION and line.new_line_no is not None
        ]

    def find_valid_comment_location(self, diff_line: int) -> tuple[int, str] | None:
        """
        Find somewhere to place a comment whose diff line does not map directly.

        Nearby diff lines are tried first (offsets 0..5, later line first).
        Failing that, the valid file line numerically closest to the
        requested number is used.
        """
        valid = self.valid_lines()
        if not valid:
            return None

        valid_set = set(valid)
        for offset in range(self.SEARCH_RADIUS + 1):
            for direction in (1, -1):
                if offset == 0 and direction == -1:
                    continue
                candidate = diff_line + offset * direction
                if candidate <= 0:
                    continue
                mapped = self.to_file_line(candidate)
                if mapped is not None and mapped in valid_set:
                    return mapped, "nearby_diff_mapping"

        closest = min(valid, key=lambda line: abs(line - diff_line))
        return closest, "closest_file_line"

    def original_code_at(self, file_line: int) -> str | None:
        """
        Source text at ``file_line`` before the change.

        For an added line this is the closest deleted line within five diff
        lines, which is what a one-line replacement suggestion replaces.
        """
        for index, line in enumerate(self._lines):
            if line.new_line_no != file_line or line.type == LineType.DELETION:
                continue
            if line.type == LineType.CONTEXT:
                return line.content
            return self._find_corresponding_deletion(index)
        return None

    def _find_corresponding_deletion(self, index: int) -> str | None:
        lo = max(0, index - self.SEARCH_RADIUS)
        hi = min(len(self._lines), index + self.SEARCH_RADIUS + 1)
        candidates = [
            i for i in range(lo, hi) if self._lines[i].type == LineType.DELETION
        ]
        if not candidates:
            return None
        nearest = min(candidates, key=lambda i: abs(i - index))
        return self._lines[nearest].content

    def render_numbered(self) -> str:
        """Render the patch with every content line prefixed by its number."""
        rendered = []
        for hunk in self.hunks:
            rendered.append(hunk.header)
            for line in hunk.lines:
                rendered.append(f"{line.diff_line_no}: {line}")
        return "\n".join(rendered)
