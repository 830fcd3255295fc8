import pytest

from factgraph.core.exceptions import ValidationError
from factgraph.services.ingestion.chunker import CharChunker
from factgraph.services.ingestion.text import strip_html_to_text


class TestCharChunker:

    def test_overlapping_windows(self):
        chunks = CharChunker(chunk_size=4, overlap=1).split("abcdefghij")

        assert [c.text for c in chunks] == ["abcd", "defg", "ghij"]
        assert [(c.start_offset, c.end_offset) for c in chunks] == [(0, 4), (3, 7), (6, 10)]
        assert [c.index for c in chunks] == [0, 1, 2]

    def test_short_text_is_one_chunk(self):
        chunks = CharChunker(chunk_size=100, overlap=10).split("  tiny filing  ")

        assert len(chunks) == 1
        assert chunks[0].text == "tiny filing"
        assert (chunks[0].start_offset, chunks[0].end_offset) == (0, 15)

    def test_blank_windows_are_skipped_and_indexes_stay_dense(self):
        chunks = CharChunker(chunk_size=4, overlap=0).split("    abcd    efgh")

        assert [c.text for c in chunks] == ["abcd", "efgh"]
        assert [c.index for c in chunks] == [0, 1]
        assert chunks[0].start_offset == 4

    @pytest.mark.parametrize("text", ["", None, "     "])
    def test_empty_input(self, text):
        assert CharChunker(chunk_size=4, overlap=1).split(text) == []

    @pytest.mark.parametrize(
        "chunk_size, overlap",
        [(0, 0), (-5, 0), (10, -1), (10, 10), (10, 11)],
    )
    def test_invalid_options(self, chunk_size, overlap):
        with pytest.raises(ValidationError):
            CharChunker(chunk_size=chunk_size, overlap=overlap)


class TestStripHtml:

    def test_removes_markup_scripts_and_styles(self):
        html = (
            "<html><style>p { color: red; }</style>"
            "<p>Revenue&nbsp;&amp; margins</p>"
            "<script>var tracking = 1;</script>"
            "<div>Risk &lt;factors&gt;</div></html>"
        )

        text = strip_html_to_text(html)

        assert "Revenue & margins" in text
        assert "Risk <factors>" in text
        assert "color" not in text
        assert "tracking" not in text
        assert "<p>" not in text
        assert "\n" in text

    def test_collapses_blank_lines(self):
        text = strip_html_to_text("<p>one</p><p></p><p></p><p></p><p>two</p>")
        assert "\n\n\n" not in text
        assert text.startswith("one")
        assert text.endswith("two")

    @pytest.mark.parametrize("html", ["", None])
    def test_empty(self, html):
        assert strip_html_to_text(html) == ""
