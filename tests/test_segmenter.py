from __future__ import annotations

from htmltr.models import SegmentKind
from htmltr.segmenter import join_segments, parse_segments, split_whitespace


def test_parse_segments_classifies_tags_text_and_scripts():
    html = (
        '<h1 class="title">Hello world</h1>\n'
        '<script type="application/ld+json">{"@type":"Article","headline":"Hello"}</script>'
        "<p>Bye</p>"
    )
    segments = parse_segments(html)
    kinds = [s.kind for s in segments]

    assert kinds == [
        SegmentKind.TAG,
        SegmentKind.TEXT,
        SegmentKind.TAG,
        SegmentKind.TEXT,
        SegmentKind.STRUCTURED,
        SegmentKind.TAG,
        SegmentKind.TEXT,
        SegmentKind.TAG,
    ]
    assert segments[1].content == "Hello world"
    assert segments[3].content == "\n"
    assert [s.index for s in segments] == list(range(len(segments)))


def test_join_segments_is_lossless():
    html = (
        "<!-- generated --><div data-x='1 > 0'>  Text with <b>bold</b> words. </div>"
        "<style>p > a { color: red; }</style>tail text"
    )
    assert join_segments(parse_segments(html)) == html


def test_paragraph_is_one_text_segment():
    html = "<p>First sentence. Second sentence! Third one?</p>"
    texts = [s for s in parse_segments(html) if s.kind == SegmentKind.TEXT]
    assert len(texts) == 1
    assert texts[0].content == "First sentence. Second sentence! Third one?"


def test_markup_inside_script_and_style_is_not_split():
    html = '<script>var s = "<p>not a tag</p>";</script><style>.a<b{}</style>'
    segments = parse_segments(html)
    assert [s.kind for s in segments] == [SegmentKind.STRUCTURED, SegmentKind.TAG]


def test_join_uses_translated_content_for_text_only():
    segments = parse_segments("<p>Hi</p>")
    segments[0].translated = "<P>"
    segments[1].translated = "Hola"
    assert join_segments(segments) == "<p>Hola</p>"


def test_split_whitespace_keeps_padding():
    assert split_whitespace("  Hello there \n") == ("  ", "Hello there", " \n")
    assert split_whitespace("   ") == ("   ", "", "")
    assert split_whitespace("x") == ("", "x", "")
