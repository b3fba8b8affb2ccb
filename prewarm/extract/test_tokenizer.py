"""
Tests for the incremental anchor tokenizer.

The tokenizer is exercised without any I/O: text goes in through ``feed``,
links come out through the injected sink.
"""

import pytest

from prewarm.extract.tokenizer import AnchorTokenizer, extract_links

DOCUMENT = (
    '<html><body><a href="/a">A</a><a href="/b">B</a>'
    '<a>no href</a><a href="">empty</a></body></html>'
)


def feed_pieces(pieces):
    links = []
    tokenizer = AnchorTokenizer(links.append)
    for piece in pieces:
        tokenizer.feed(piece)
    tokenizer.close()
    return links


class TestAnchorTokenizer:
    def test_reference_document(self):
        assert extract_links(DOCUMENT) == ["/a", "/b"]

    def test_document_order_and_duplicates_kept(self):
        html = '<a href="/z">1</a><p><a href="/y">2</a></p><a href="/z">3</a>'

        assert extract_links(html) == ["/z", "/y", "/z"]

    def test_non_anchor_tags_ignored(self):
        html = (
            '<link rel="stylesheet" href="/style.css">'
            '<img src="/logo.png"><area href="/map">'
            '<base href="/root/"><a href="/only">x</a>'
        )

        assert extract_links(html) == ["/only"]

    def test_attribute_without_value_ignored(self):
        assert extract_links("<a href>bare</a><a name=top>anchor</a>") == []

    def test_tag_and_attribute_names_case_insensitive(self):
        assert extract_links('<A HREF="/Upper">x</A>') == ["/Upper"]

    def test_value_not_normalized(self):
        html = '<a href="  /spaced  ">x</a><a href="mailto:me@example.com">m</a>'

        assert extract_links(html) == ["  /spaced  ", "mailto:me@example.com"]

    def test_character_references_decoded(self):
        assert extract_links('<a href="/q?a=1&amp;b=2">x</a>') == ["/q?a=1&b=2"]

    def test_first_href_wins(self):
        assert extract_links('<a href="/first" href="/second">x</a>') == ["/first"]

    def test_self_closing_anchor(self):
        assert extract_links('<a href="/self"/>') == ["/self"]

    def test_unquoted_and_single_quoted_values(self):
        assert extract_links("<a href=/plain>x</a><a href='/single'>y</a>") == [
            "/plain",
            "/single",
        ]

    def test_script_and_comments_do_not_produce_links(self):
        html = (
            "<script>var s = '<a href=\"/in-script\">';</script>"
            '<!-- <a href="/in-comment"> -->'
            '<a href="/real">x</a>'
        )

        assert extract_links(html) == ["/real"]

    def test_truncated_tag_at_end_is_not_a_link(self):
        assert feed_pieces(['<a href="/x">ok</a>', '<a href="/y"']) == ["/x"]

    @pytest.mark.parametrize("size", [1, 2, 3, 5, 8, 13])
    def test_tag_split_across_pieces(self, size):
        pieces = [DOCUMENT[i : i + size] for i in range(0, len(DOCUMENT), size)]

        assert feed_pieces(pieces) == ["/a", "/b"]

    def test_split_inside_attribute_value(self):
        pieces = ['<a hr', 'ef="/lo', 'ng/path?x=1&am', 'p;y=2">t</a>']

        assert feed_pieces(pieces) == ["/long/path?x=1&y=2"]

    def test_sink_called_as_soon_as_tag_completes(self):
        links = []
        tokenizer = AnchorTokenizer(links.append)

        tokenizer.feed('<a href="/early">')
        assert links == ["/early"]

        tokenizer.feed('</a><a href="/later"')
        assert links == ["/early"]

        tokenizer.feed(">")
        assert links == ["/early", "/later"]
