import json

import pytest

from insight_feed.crawling import ParsedInsight, ParseError, extract_json_payload, parse_insights


SAMPLE = [
    {"title": "New model released", "summary": "A lab released a model that beats the previous state of the art."},
    {"title": "Funding round", "summary": "A startup raised $20M to build agent tooling."},
]


def test_round_trip_through_json_fence():
    content = "```json\n" + json.dumps({"insights": SAMPLE}) + "\n```"
    assert parse_insights(content) == [ParsedInsight(**item) for item in SAMPLE]


def test_prefers_json_fence_over_other_fences():
    content = (
        "Here is some code:\n```python\nprint('hi')\n```\n"
        "and the answer:\n```json\n" + json.dumps({"insights": SAMPLE[:1]}) + "\n```"
    )
    assert parse_insights(content) == [ParsedInsight(**SAMPLE[0])]


def test_unlabelled_fence_and_bare_json():
    payload = json.dumps({"insights": SAMPLE})
    assert len(parse_insights("```\n" + payload + "\n```")) == 2
    assert len(parse_insights(payload)) == 2
    assert extract_json_payload("  " + payload + "  ") == payload


def test_empty_insights_is_a_valid_empty_result():
    assert parse_insights('```json\n{"insights": []}\n```') == []


@pytest.mark.parametrize(
    "content",
    [
        "",
        "   ",
        "I could not find anything useful.",
        '{"insights": [{"title": "cut off", "summ',
        "```json\n{not json}\n```",
        '{"results": []}',
        '{"insights": "none"}',
        '["insights"]',
    ],
)
def test_unrecoverable_output_raises_parse_error(content):
    with pytest.raises(ParseError):
        parse_insights(content)


def test_malformed_elements_are_dropped_and_siblings_kept():
    payload = {
        "insights": [
            SAMPLE[0],
            {"title": "No summary"},
            {"summary": "No title"},
            {"title": "", "summary": "Blank title"},
            {"title": 5, "summary": "Numeric title"},
            "just a string",
            SAMPLE[1],
        ]
    }
    result = parse_insights(json.dumps(payload))
    assert result == [ParsedInsight(**SAMPLE[0]), ParsedInsight(**SAMPLE[1])]


def test_round_trip_with_backticks_inside_values():
    items = [
        {"title": "Use ```pip install``` now", "summary": "Run ```pip install pkg``` then restart."},
        {"title": "Plain", "summary": "No code here."},
    ]
    content = "```json\n" + json.dumps({"insights": items}) + "\n```"
    assert parse_insights(content) == [ParsedInsight(**item) for item in items]

    unlabelled = "```\n" + json.dumps({"insights": items}, indent=2) + "\n```"
    assert parse_insights(unlabelled) == [ParsedInsight(**item) for item in items]


def test_fence_closed_on_the_same_line_is_still_found():
    payload = json.dumps({"insights": SAMPLE[:1]})
    assert parse_insights("```json " + payload + "```") == [ParsedInsight(**SAMPLE[0])]
