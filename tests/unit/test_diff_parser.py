import pytest

from pr_reviewer.services.review.diff_parser import DiffLineMapper, DiffParser, LineType
from tests.fixtures.sample_diffs import (
    DELETION_ONLY,
    MULTI_FILE_DIFF,
    MULTIPLE_HUNKS,
    NEW_FILE,
    SIMPLE_MODIFICATION,
)


class TestDiffParser:
    """Tests for the per-file patch parser."""

    @pytest.fixture
    def parser(self) -> DiffParser:
        return DiffParser()

    def test_parse_simple_modification(self, parser: DiffParser) -> None:
        """Test parsing a simple file modification."""
        hunks = parser.parse_patch(SIMPLE_MODIFICATION)

        assert len(hunks) == 1
        hunk = hunks[0]
        assert hunk.old_start == 1
        assert hunk.new_start == 1
        assert hunk.new_count == 5

        additions = [line for line in hunk.lines if line.type == LineType.ADDITION]
        deletions = [line for line in hunk.lines if line.type == LineType.DELETION]

        assert len(additions) == 2
        assert len(deletions) == 1
        assert additions[0].content == "    result = a + b"
        assert additions[0].new_line_no == 2
        assert deletions[0].old_line_no == 2

    def test_diff_numbering_spans_hunks(self, parser: DiffParser) -> None:
        """Test that diff line numbers continue across hunks."""
        hunks = parser.parse_patch(MULTIPLE_HUNKS)

        assert len(hunks) == 2
        assert [line.diff_line_no for line in hunks[0].lines] == [1, 2, 3, 4]
        assert [line.diff_line_no for line in hunks[1].lines] == [5, 6, 7]
        assert hunks[1].lines[0].new_line_no == 10

    def test_hunk_without_counts(self, parser: DiffParser) -> None:
        """Test single-line hunk headers default their counts to one."""
        hunks = parser.parse_patch("@@ -3 +3 @@\n-old\n+new")

        assert hunks[0].old_count == 1
        assert hunks[0].new_count == 1
        assert hunks[0].lines[1].new_line_no == 3

    def test_triple_sign_lines_inside_hunk(self, parser: DiffParser) -> None:
        """Test ``+++`` and ``---`` inside a hunk are content, not file headers."""
        hunks = parser.parse_patch("@@ -1,3 +1,3 @@\n a\n--- old comment\n+++i;\n b")

        lines = hunks[0].lines
        assert [line.type for line in lines] == [
            LineType.CONTEXT,
            LineType.DELETION,
            LineType.ADDITION,
            LineType.CONTEXT,
        ]
        assert lines[1].content == "-- old comment"
        assert lines[2].content == "++i;"
        assert lines[3].new_line_no == 3

    def test_empty_patch(self, parser: DiffParser) -> None:
        """Test that an empty patch has no hunks."""
        assert parser.parse_patch("") == []


class TestDiffLineMapper:
    """Tests for mapping numbered-diff lines to file lines."""

    def test_maps_additions_and_context(self) -> None:
        """Test added and context lines map to their new file line."""
        mapper = DiffLineMapper(SIMPLE_MODIFICATION)

        assert mapper.to_file_line(1) == 1
        assert mapper.to_file_line(3) == 2
        assert mapper.to_file_line(4) == 3
        assert mapper.to_file_line(6) == 5

    def test_deleted_and_unknown_lines(self) -> None:
        """Test deleted or out-of-range lines do not map."""
        mapper = DiffLineMapper(SIMPLE_MODIFICATION)

        assert mapper.to_file_line(2) is None
        assert mapper.to_file_line(99) is None

    def test_maps_second_hunk(self) -> None:
        """Test mapping into a later hunk."""
        mapper = DiffLineMapper(MULTIPLE_HUNKS)

        assert mapper.to_file_line(6) == 11
        assert mapper.valid_lines() == [1, 2, 3, 10, 11, 12]

    def test_added_line_starting_with_plus_signs(self) -> None:
        """Test an added ``++i;`` keeps the following lines numbered correctly."""
        mapper = DiffLineMapper("@@ -1,2 +1,3 @@\n a\n+++i;\n b")

        assert mapper.valid_lines() == [1, 2, 3]
        assert mapper.changed_lines() == [2]
        assert mapper.render_numbered() == "@@ -1,2 +1,3 @@\n1:  a\n2: +++i;\n3:  b"

    def test_fallback_prefers_next_diff_line(self) -> None:
        """Test a deleted line falls back to the following diff line."""
        mapper = DiffLineMapper(SIMPLE_MODIFICATION)

        assert mapper.find_valid_comment_location(2) == (2, "nearby_diff_mapping")

    def test_fallback_to_closest_file_line(self) -> None:
        """Test far-away lines fall back to the closest valid file line."""
        mapper = DiffLineMapper(MULTIPLE_HUNKS)

        assert mapper.find_valid_comment_location(40) == (12, "closest_file_line")

    def test_fallback_without_valid_lines(self) -> None:
        """Test there is no location when every line was deleted."""
        mapper = DiffLineMapper("@@ -1,2 +0,0 @@\n-a\n-b")

        assert mapper.find_valid_comment_location(1) is None

    def test_original_code_for_added_line(self) -> None:
        """Test an added line finds the nearby deleted line it replaces."""
        mapper = DiffLineMapper(SIMPLE_MODIFICATION)

        assert mapper.original_code_at(2) == "    return a + b"
        assert mapper.original_code_at(1) == "def calculate_sum(a, b):"

    def test_original_code_for_new_file(self) -> None:
        """Test added lines without deletions have no original code."""
        mapper = DiffLineMapper(NEW_FILE)

        assert mapper.original_code_at(1) is None

    def test_deletion_only_patch(self) -> None:
        """Test only the kept context line is commentable."""
        mapper = DiffLineMapper(DELETION_ONLY)

        assert mapper.valid_lines() == [1]

    def test_render_numbered(self) -> None:
        """Test the numbered rendering shown to the model."""
        rendered = DiffLineMapper(SIMPLE_MODIFICATION).render_numbered().split("\n")

        assert rendered[0] == "@@ -1,4 +1,5 @@"
        assert rendered[1] == "1:  def calculate_sum(a, b):"
        assert rendered[2] == "2: -    return a + b"
        assert rendered[3] == "3: +    result = a + b"

    def test_changed_lines(self) -> None:
        """Test only added file lines are reported as changed."""
        assert DiffLineMapper(SIMPLE_MODIFICATION).changed_lines() == [2, 3]
        assert DiffLineMapper(MULTIPLE_HUNKS).changed_lines() == [2, 11]


class TestMultiFileDiff:
    """Tests for parsing a whole git diff."""

    def test_splits_files_with_status(self) -> None:
        """Test each file gets its path, status and hunks."""
        files = DiffParser().parse(MULTI_FILE_DIFF)

        assert [(f.path, f.status) for f in files] == [
            ("src/main.py", "modified"),
            ("src/validate.py", "added"),
            ("legacy.py", "deleted"),
        ]
        assert (files[0].additions, files[0].deletions) == (2, 1)
        assert files[1].additions == 4
        assert files[2].deletions == 1

    def test_numbering_restarts_per_file(self) -> None:
        """Test each file is numbered like its own patch."""
        files = DiffParser().parse(MULTI_FILE_DIFF)

        assert files[1].hunks[0].lines[0].diff_line_no == 1
        assert files[0].to_patch_string() == SIMPLE_MODIFICATION

    def test_rename(self) -> None:
        """Test renamed files keep their old path."""
        diff = "\n".join(
            [
                "diff --git a/old.py b/new.py",
                "similarity index 90%",
                "--- a/old.py",
                "+++ b/new.py",
                "@@ -1 +1 @@",
                "-x = 1",
                "+x = 2",
            ]
        )

        (file_diff,) = DiffParser().parse(diff)

        assert file_diff.status == "renamed"
        assert file_diff.old_path == "old.py"

    def test_empty(self) -> None:
        """Test blank input parses to nothing."""
        assert DiffParser().parse("  \n") == []
