from app.services.kb.matcher import HIGHLIGHT_CLOSE, HIGHLIGHT_OPEN, find_matches_in_html, highlight


def _as_tuples(matches):
    return [(m.heading, m.context, m.highlighted_context) for m in matches]


def test_match_is_attributed_to_preceding_heading() -> None:
    html = "<h1>Intro</h1><p>This mentions apple once.</p><h2>Next</h2><p>No fruit here.</p>"
    assert _as_tuples(find_matches_in_html(html, "apple")) == [
        ("Intro", "This mentions apple once.", "This mentions <mark>apple</mark> once."),
    ]


def test_heading_match_attributes_to_previous_heading() -> None:
    # Known quirk kept on purpose: a heading that matches is reported under the
    # heading before it, not under itself.
    html = "<h1>Overview</h1><p>Intro text.</p><h2>Apple setup</h2><p>Unrelated.</p>"
    assert _as_tuples(find_matches_in_html(html, "apple")) == [
        ("Overview", "Apple setup", "<mark>Apple</mark> setup"),
    ]


def test_first_heading_match_has_empty_heading() -> None:
    html = "<h2>Apple pie</h2><p>Bake the APPLE. Serve warm!</p>"
    assert _as_tuples(find_matches_in_html(html, "apple")) == [
        ("", "Apple pie", "<mark>Apple</mark> pie"),
        ("Apple pie", "Bake the APPLE.", "Bake the <mark>APPLE</mark>."),
    ]


def test_no_headings_means_empty_heading_everywhere() -> None:
    html = "<div><p>Apples are red. Pears are green! Is an apple a fruit? Yes.</p></div>"
    matches = find_matches_in_html(html, "apple")
    assert [m.context for m in matches] == ["Apples are red.", "Is an apple a fruit?"]
    assert all(m.heading == "" for m in matches)


def test_text_before_first_heading_is_not_searched() -> None:
    # Known quirk kept on purpose: with headings present, the preamble is skipped.
    html = "<p>apple in the preamble.</p><h1>Title</h1><p>apple after.</p>"
    assert [m.context for m in find_matches_in_html(html, "apple")] == ["apple after."]


def test_every_occurrence_is_highlighted() -> None:
    html = "<p>Apple, apple and APPLE.</p>"
    (match,) = find_matches_in_html(html, "apple")
    assert match.highlighted_context == (
        "<mark>Apple</mark>, <mark>apple</mark> and <mark>APPLE</mark>."
    )


def test_highlight_only_wraps_term() -> None:
    text = "Pay by card; the card fee is waived."
    highlighted = highlight(text, "CARD")
    assert highlighted.count(HIGHLIGHT_OPEN) == 2
    assert highlighted.replace(HIGHLIGHT_OPEN, "").replace(HIGHLIGHT_CLOSE, "") == text


def test_regex_metacharacters_in_term_are_literal() -> None:
    html = "<p>Use C++ or (maybe) C#. Nothing else.</p>"
    (match,) = find_matches_in_html(html, "c++")
    assert match.highlighted_context == "Use <mark>C++</mark> or (maybe) C#."
    assert find_matches_in_html("<p>abc.</p>", "a.c") == []


def test_nested_markup_is_stripped_from_headings_and_body() -> None:
    html = (
        '<h2 class="title"><span>Order <b>tracking</b></span></h2>'
        "<ul><li>Open the <a href='/t'>tracking</a> page.</li><li>Enter the code.</li></ul>"
    )
    assert _as_tuples(find_matches_in_html(html, "tracking")) == [
        ("", "Order tracking", "Order <mark>tracking</mark>"),
        (
            "Order tracking",
            "Open the tracking page.",
            "Open the <mark>tracking</mark> page.",
        ),
    ]


def test_whitespace_is_collapsed_in_contexts() -> None:
    html = "<h3>Steps</h3>\n<p>First   step.\n\n   Second\tstep mentions refund.</p>"
    (match,) = find_matches_in_html(html, "refund")
    assert match.heading == "Steps"
    assert match.context == "Second step mentions refund."


def test_sentences_split_only_on_terminal_punctuation_and_space() -> None:
    html = "<p>Version 2.5 adds refunds! Visit example.com for refund details? Done.</p>"
    assert [m.context for m in find_matches_in_html(html, "refund")] == [
        "Version 2.5 adds refunds!",
        "Visit example.com for refund details?",
    ]


def test_matches_follow_document_order_across_sections() -> None:
    html = (
        "<h1>A</h1><p>term one.</p>"
        "<h2>B term</h2><p>term two.</p>"
        "<h2>C</h2><p>nothing.</p><p>term three.</p>"
    )
    assert [(m.heading, m.context) for m in find_matches_in_html(html, "term")] == [
        ("A", "B term"),
        ("A", "term one."),
        ("B term", "term two."),
        ("C", "term three."),
    ]


def test_empty_term_matches_nothing() -> None:
    html = "<h1>Intro</h1><p>Some text.</p>"
    assert find_matches_in_html(html, "") == []
    assert highlight("Some text", "") == "Some text"


def test_empty_html_matches_nothing() -> None:
    assert find_matches_in_html("", "apple") == []


def test_extraction_is_idempotent() -> None:
    html = "<h1>Intro</h1><p>apple. Apple!</p><h2>apple</h2>"
    assert find_matches_in_html(html, "apple") == find_matches_in_html(html, "apple")
