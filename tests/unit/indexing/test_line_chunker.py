"""Tests for LineChunker - fixed-size line chunking."""

from pathlib import Path

import pytest

from kb_index.config import Config, IndexingConfig
from kb_index.errors import DecodeError
from kb_index.indexing.line_chunker import LineChunker, split_lines
from kb_index.models import Chunk


class TestLineChunker:
    """Test suite for LineChunker implementation."""

    @pytest.fixture
    def chunker(self):
        """Create a LineChunker with the default 10-line chunks."""
        return LineChunker(IndexingConfig())

    def test_25_lines_produce_three_chunks(self, chunker):
        lines = [f"line {i}\n" for i in range(25)]

        chunks = chunker.chunk_lines(lines, "/docs/a.md")

        assert [(c.start_line, c.end_line) for c in chunks] == [
            (0, 9),
            (10, 19),
            (20, 24),
        ]
        assert chunks[2].line_count == 5

    def test_chunks_partition_all_lines_in_order(self, chunker):
        for line_count in (1, 9, 10, 11, 20, 37):
            lines = [f"{i}\n" for i in range(line_count)]
            chunks = chunker.chunk_lines(lines, "f.md")

            assert len(chunks) == chunker.estimate_chunks(line_count)
            assert "".join(c.text for c in chunks) == "".join(lines)
            expected_start = 0
            for chunk in chunks:
                assert chunk.start_line == expected_start
                assert 1 <= chunk.line_count <= 10
                expected_start = chunk.end_line + 1
            assert expected_start == line_count

    def test_zero_lines_produce_no_chunks(self, chunker):
        assert chunker.chunk_lines([], "empty.md") == []
        assert chunker.estimate_chunks(0) == 0

    def test_estimate_is_ceiling_division(self, chunker):
        assert chunker.estimate_chunks(1) == 1
        assert chunker.estimate_chunks(10) == 1
        assert chunker.estimate_chunks(11) == 2
        assert chunker.estimate_chunks(100) == 10

    def test_chunk_size_comes_from_config(self):
        chunker = LineChunker(Config(indexing=IndexingConfig(chunk_lines=3)))
        chunks = chunker.chunk_lines(["a\n"] * 7, "x.md")
        assert [c.line_count for c in chunks] == [3, 3, 1]

    def test_defaults_without_config(self):
        assert LineChunker().lines_per_chunk == 10

    def test_chunk_file_keeps_text_and_path(self, chunker, tmp_path, write_lines):
        path = write_lines(tmp_path / "notes.md", 12)

        chunks = chunker.chunk_file(path)

        assert len(chunks) == 2
        assert chunks[0].source_path == str(path)
        assert chunks[0].text.startswith("line 0\n")
        assert chunks[1].text == "line 10\nline 11\n"

    def test_file_without_trailing_newline(self, chunker, tmp_path):
        path = tmp_path / "a.rs"
        path.write_text("fn main() {}\n// end")

        chunks = chunker.chunk_file(path)

        assert len(chunks) == 1
        assert chunks[0].end_line == 1
        assert chunks[0].text.endswith("// end")

    def test_empty_file_produces_no_chunks(self, chunker, tmp_path):
        path = tmp_path / "empty.md"
        path.write_text("")
        assert chunker.chunk_file(path) == []

    def test_binary_file_raises_decode_error(self, chunker, tmp_path):
        path = tmp_path / "blob.js"
        path.write_bytes(b"var x = 1;\x00\x01\x02")

        with pytest.raises(DecodeError) as exc_info:
            chunker.chunk_file(path)
        assert exc_info.value.path == str(path)

    def test_invalid_utf8_raises_decode_error(self, chunker, tmp_path):
        path = tmp_path / "latin.md"
        path.write_bytes("caf\xe9\n".encode("latin-1"))

        with pytest.raises(DecodeError):
            chunker.chunk_file(path)

    def test_unchanged_file_regenerates_identical_ids(self, chunker, tmp_path, write_lines):
        path = write_lines(tmp_path / "stable.ts", 31)

        first = [c.chunk_id for c in chunker.chunk_file(path)]
        second = [c.chunk_id for c in chunker.chunk_file(Path(str(path)))]

        assert first == second
        assert len(set(first)) == 4


class TestChunkModel:
    """Invariants of the Chunk data model."""

    def test_start_after_end_is_rejected(self):
        with pytest.raises(ValueError):
            Chunk(source_path="a.md", start_line=5, end_line=4, text="x")

    def test_negative_start_is_rejected(self):
        with pytest.raises(ValueError):
            Chunk(source_path="a.md", start_line=-1, end_line=4, text="x")

    def test_id_depends_only_on_path_and_range(self):
        a = Chunk(source_path="a.md", start_line=0, end_line=9, text="old")
        b = Chunk(source_path="a.md", start_line=0, end_line=9, text="new")
        c = Chunk(source_path="a.md", start_line=10, end_line=19, text="old")

        assert a.chunk_id == b.chunk_id
        assert a.chunk_id != c.chunk_id

    def test_whitespace_only_chunk_is_blank(self):
        assert Chunk(source_path="a.md", start_line=0, end_line=2, text=" \n\t\n").is_blank
        assert not Chunk(source_path="a.md", start_line=0, end_line=0, text="x").is_blank


class TestSplitLines:
    """Line splitting used before chunking."""

    def test_only_line_feeds_end_lines(self):
        text = "a\fb\n" "c\vd\n" "e\u2028f\n" "g\u2029h\n" "i\x85j\x1ck\n"

        assert split_lines(text) == [
            "a\fb\n",
            "c\vd\n",
            "e\u2028f\n",
            "g\u2029h\n",
            "i\x85j\x1ck\n",
        ]

    def test_crlf_and_missing_trailing_newline(self):
        assert split_lines("a\r\nb\r\nc") == ["a\r\n", "b\r\n", "c"]
        assert split_lines("a\n\n") == ["a\n", "\n"]
        assert split_lines("") == []

    def test_unicode_separator_does_not_shift_line_numbers(self, tmp_path):
        path = tmp_path / "strings.js"
        lines = [f"const s{i} = 'x';\n" for i in range(10)]
        lines[4] = "const s4 = 'before\u2028after';\n"
        lines[7] = "// page break\f\n"
        path.write_text("".join(lines), encoding="utf-8")

        chunks = LineChunker().chunk_file(path)

        assert [(c.start_line, c.end_line) for c in chunks] == [(0, 9)]
        assert chunks[0].text == "".join(lines)
