"""Tests for best-effort JSON decoding of model output."""

from finbuild.services.structured_output import decode_json, decode_json_object, strip_code_fence


def test_strip_json_fence():
    assert strip_code_fence('```json\n{"a": 1}\n```') == '{"a": 1}'


def test_strip_bare_fence():
    assert strip_code_fence('```\n{"a": 1}\n```') == '{"a": 1}'


def test_unfenced_text_untouched():
    assert strip_code_fence('  {"a": 1}  ') == '{"a": 1}'


def test_decode_plain_json():
    result = decode_json('{"name": "FX Dash"}')
    assert result.ok
    assert result.value == {"name": "FX Dash"}


def test_decode_fenced_json():
    result = decode_json('```json\n{"techStack": ["React"]}\n```')
    assert result.value == {"techStack": ["React"]}


def test_decode_json_embedded_in_prose():
    result = decode_json('Here is what I found:\n{"name": "Risk Engine"}\nHope that helps.')
    assert result.value == {"name": "Risk Engine"}


def test_prose_is_an_error_not_an_exception():
    result = decode_json("I could not find any requirements in that message.")
    assert not result.ok
    assert result.value is None
    assert "not valid JSON" in result.error


def test_empty_and_none_are_errors():
    assert decode_json("").error == "empty response"
    assert decode_json(None).error == "empty response"


def test_object_required():
    result = decode_json_object('["React", "Node"]')
    assert not result.ok
    assert "expected a JSON object" in result.error


def test_object_accepted():
    assert decode_json_object('{"a": null}').value == {"a": None}
