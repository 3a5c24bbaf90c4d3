import json
import sys
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from novel_app.services.errors import MalformedResponseError
from novel_app.services.response_parser import parse_episode_response, parse_json_object


def test_parses_plain_json_object():
    raw = json.dumps(
        {
            "title": "T",
            "content": "The rain had not stopped for three days.",
            "summary": "S",
            "next_options": ["a", "b"],
            "is_finished": False,
        }
    )

    record = parse_episode_response(raw)

    assert record.title == "T"
    assert record.content == "The rain had not stopped for three days."
    assert record.summary == "S"
    assert record.next_options == ["a", "b"]
    assert record.is_finished is False


def test_strips_code_fences():
    raw = '```json\n{"title": "Fenced", "content": "Body text", "summary": "So far"}\n```'

    record = parse_episode_response(raw)

    assert record.title == "Fenced"
    assert record.content == "Body text"
    assert record.next_options == []


def test_strips_inline_fences():
    record = parse_episode_response('```json {"content": "inline"} ```')

    assert record.content == "inline"


def test_finds_object_after_commentary():
    raw = (
        "Sure! Here is the next episode you asked for:\n"
        '{"title": "Night {Market}", "content": "She said \\"wait\\" and left.", "summary": "S"}\n'
        "Let me know if you want changes."
    )

    record = parse_episode_response(raw)

    assert record.title == "Night {Market}"
    assert record.content == 'She said "wait" and left.'


def test_plain_prose_is_rejected():
    with pytest.raises(MalformedResponseError):
        parse_episode_response("Once upon a time there was a story with no JSON at all.")


def test_missing_content_is_rejected():
    with pytest.raises(MalformedResponseError):
        parse_episode_response('{"title": "Only a title", "summary": "Nothing else"}')


def test_blank_content_is_rejected():
    with pytest.raises(MalformedResponseError):
        parse_episode_response('{"content": "   "}')


def test_next_options_are_cleaned_and_capped():
    raw = json.dumps({"content": "x", "next_options": ["one", "", "two", None, "three", "four", "five"]})

    record = parse_episode_response(raw)

    assert record.next_options == ["one", "two", "three", "four"]


def test_is_finished_accepts_string_flags():
    record = parse_episode_response('{"content": "x", "is_finished": "true"}')

    assert record.is_finished is True


def test_parse_json_object_ignores_arrays_and_empty_input():
    assert parse_json_object("") is None
    assert parse_json_object(None) is None
    assert parse_json_object("[1, 2, 3]") is None
    assert parse_json_object('noise {"plan": []} noise') == {"plan": []}
