"""Tests for tool-call argument normalization."""

from commerce_assistant.services.tools.arguments import (
    JsonText,
    Parsed,
    normalize_arguments,
    to_raw_args,
)


class TestToRawArgs:
    def test_string_is_json_text(self) -> None:
        assert to_raw_args('{"id": 1}') == JsonText('{"id": 1}')

    def test_mapping_is_parsed(self) -> None:
        assert to_raw_args({"id": 1}) == Parsed({"id": 1})

    def test_tagged_value_passes_through(self) -> None:
        tagged = JsonText("{}")
        assert to_raw_args(tagged) is tagged

    def test_other_values_become_empty(self) -> None:
        assert to_raw_args(42) == Parsed({})


class TestNormalizeArguments:
    """Both upstream shapes yield the same canonical mapping."""

    def test_text_and_mapping_agree(self) -> None:
        from_text = normalize_arguments('{"productId": 7, "quantity": 2}')
        from_mapping = normalize_arguments({"productId": 7, "quantity": 2})

        assert from_text == from_mapping == {"productId": 7, "quantity": 2}

    def test_returns_a_copy(self) -> None:
        source = {"productId": 7}
        result = normalize_arguments(Parsed(source))
        result["productId"] = 8

        assert source == {"productId": 7}

    def test_invalid_json_is_empty(self) -> None:
        assert normalize_arguments("{not json") == {}

    def test_non_object_json_is_empty(self) -> None:
        assert normalize_arguments("[1, 2]") == {}

    def test_blank_and_none(self) -> None:
        assert normalize_arguments("   ") == {}
        assert normalize_arguments(None) == {}
