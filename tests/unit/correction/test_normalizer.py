import json

import pytest
from text_corrector.correction.normalizer import ResponseNormalizer, extract_json_object, find_sentence_offset
from text_corrector.errors import AuthError, BackendError, ParseError
from text_corrector.types import Correction, Span

SOURCE = "今天天气很好。我们去公圆玩。他很高心。"
CORRECTED = "今天天气很好。我们去公园玩。他很高兴。"


@pytest.fixture
def normalizer(test_logger):
    return ResponseNormalizer(logger=test_logger)


@pytest.fixture
def baidu_payload():
    """A Baidu text-correction response with sentence-local fragment positions."""
    return {
        "log_id": 1234567890,
        "item": {
            "text": SOURCE,
            "error_num": 2,
            "correct_query": CORRECTED,
            "details": [
                {
                    "sentence": "我们去公圆玩。",
                    "sentence_fixed": "我们去公园玩。",
                    "sentence_id": 1,
                    "begin_sentence_offset": 7,
                    "end_sentence_offset": 14,
                    "vec_fragment": [
                        {"explain": "别字", "begin_pos": 3, "end_pos": 5, "ori_frag": "公圆", "correct_frag": "公园", "label": "word"}
                    ],
                },
                {
                    "sentence": "他很高心。",
                    "sentence_fixed": "他很高兴。",
                    "sentence_id": 2,
                    "vec_fragment": [
                        {"begin_pos": 2, "end_pos": 4, "ori_frag": "高心", "correct_frag": "高兴", "label": "word"}
                    ],
                },
            ],
        },
    }


def test_baidu_payload(normalizer, baidu_payload):
    result = normalizer.normalize(baidu_payload, SOURCE)

    assert result.corrected_text == CORRECTED
    assert result.corrections == [
        Correction("公圆", "公园", Span(10, 12), "别字"),
        Correction("高心", "高兴", Span(16, 18), "word"),
    ]
    for correction in result.corrections:
        assert SOURCE[correction.span.start : correction.span.end] == correction.original


def test_accepts_json_string_and_bytes(normalizer, baidu_payload):
    as_text = normalizer.normalize(json.dumps(baidu_payload, ensure_ascii=False), SOURCE)
    as_bytes = normalizer.normalize(json.dumps(baidu_payload).encode("utf-8"), SOURCE)

    assert as_text == as_bytes == normalizer.normalize(baidu_payload, SOURCE)


def test_rebuilds_text_when_correct_query_missing(normalizer, baidu_payload):
    del baidu_payload["item"]["correct_query"]

    result = normalizer.normalize(baidu_payload, SOURCE)

    assert result.corrected_text == CORRECTED
    assert len(result.corrections) == 2


def test_rebuilds_text_when_correct_query_equals_source(normalizer, baidu_payload):
    baidu_payload["item"]["correct_query"] = SOURCE

    result = normalizer.normalize(baidu_payload, SOURCE)

    assert result.corrected_text == CORRECTED


def test_normalize_is_idempotent(normalizer, baidu_payload):
    assert normalizer.normalize(baidu_payload, SOURCE) == normalizer.normalize(baidu_payload, SOURCE)


def test_flat_text_takes_priority(normalizer):
    payload = {"text": "flat text", "item": {"correct_query": "nested text", "details": []}}

    result = normalizer.normalize(payload, "source")

    assert result.corrected_text == "flat text"
    assert result.corrections == []


def test_no_corrections_returns_source(normalizer):
    result = normalizer.normalize({"log_id": 1}, "nothing to fix")

    assert result.corrected_text == "nothing to fix"
    assert result.corrections == []


def test_noop_and_invalid_fragments_are_dropped(normalizer):
    source = "one two three"
    payload = {
        "item": {
            "details": [
                {
                    "sentence": source,
                    "vec_fragment": [
                        {"begin_pos": 0, "end_pos": 3, "ori_frag": "one", "correct_frag": "one"},
                        {"begin_pos": 4, "end_pos": 7, "ori_frag": "", "correct_frag": "2"},
                        {"begin_pos": 7, "end_pos": 4, "ori_frag": "two", "correct_frag": "2"},
                        {"begin_pos": 8, "end_pos": 13, "ori_frag": "three", "correct_frag": "3"},
                    ],
                }
            ]
        }
    }

    result = normalizer.normalize(payload, source)

    assert result.corrections == [Correction("three", "3", Span(8, 13))]
    assert result.corrected_text == "one two 3"


def test_fragment_end_defaults_to_original_length(normalizer):
    payload = {"item": {"details": [{"sentence": "a bad word", "vec_fragment": [{"begin_pos": 2, "ori_frag": "bad", "correct_frag": "good"}]}]}}

    result = normalizer.normalize(payload, "a bad word")

    assert result.corrections[0].span == Span(2, 5)
    assert result.corrected_text == "a good word"


def test_repeated_sentences_are_located_in_order(normalizer):
    source = "Its fine. Its fine."
    fragment = {"begin_pos": 0, "end_pos": 3, "ori_frag": "Its", "correct_frag": "It's"}
    payload = {
        "item": {
            "details": [
                {"sentence": "Its fine.", "vec_fragment": [fragment]},
                {"sentence": "Its fine.", "vec_fragment": [fragment]},
            ]
        }
    }

    result = normalizer.normalize(payload, source)

    assert [c.span for c in result.corrections] == [Span(0, 3), Span(10, 13)]
    assert result.corrected_text == "It's fine. It's fine."


def test_generic_items_with_positions(normalizer):
    payload = {
        "items": [
            {"ori": "teh", "correct": "the", "begin_pos": 0, "end_pos": 3, "type": "spelling"},
            {"ori_text": "brwon", "corr_text": "brown", "loc": {"offset": 10, "length": 5}},
        ]
    }

    result = normalizer.normalize(payload, "teh quick brwon fox")

    assert result.corrections == [
        Correction("teh", "the", Span(0, 3), "spelling"),
        Correction("brwon", "brown", Span(10, 15)),
    ]
    assert result.corrected_text == "the quick brown fox"


def test_generic_items_without_position_are_searched(normalizer):
    payload = {"items": [{"ori": "wrold", "correct": "world"}, {"ori": "missing", "correct": "gone"}]}

    result = normalizer.normalize(payload, "hello wrold")

    assert result.corrections == [Correction("wrold", "world", Span(6, 11))]
    assert result.corrected_text == "hello world"


def test_details_take_priority_over_items(normalizer):
    payload = {
        "item": {"details": [{"sentence": "abc def", "vec_fragment": [{"begin_pos": 0, "end_pos": 3, "ori_frag": "abc", "correct_frag": "ABC"}]}]},
        "items": [{"ori": "def", "correct": "DEF", "begin_pos": 4, "end_pos": 7}],
    }

    result = normalizer.normalize(payload, "abc def")

    assert result.corrections == [Correction("abc", "ABC", Span(0, 3))]
    assert result.corrected_text == "ABC def"


def test_chat_completion_envelope(normalizer, baidu_payload):
    content = "Here is the result:\n```json\n" + json.dumps(baidu_payload, ensure_ascii=False) + "\n```"
    envelope = {
        "id": "chatcmpl-1",
        "model": "deepseek-chat",
        "choices": [{"index": 0, "message": {"role": "assistant", "content": content}, "finish_reason": "stop"}],
    }

    result = normalizer.normalize(envelope, SOURCE)

    assert result.corrected_text == CORRECTED
    assert len(result.corrections) == 2


def test_envelope_without_json_raises_parse_error(normalizer):
    envelope = {"choices": [{"message": {"role": "assistant", "content": "I cannot help with that."}}]}

    with pytest.raises(ParseError):
        normalizer.normalize(envelope, "text")


def test_envelope_with_empty_choices_raises_parse_error(normalizer):
    with pytest.raises(ParseError):
        normalizer.normalize({"choices": []}, "text")


@pytest.mark.parametrize("raw", ["not json at all", "{broken", "[1, 2, 3]", b"not json"])
def test_malformed_response_raises_parse_error(normalizer, raw):
    with pytest.raises(ParseError):
        normalizer.normalize(raw, "text")


@pytest.mark.parametrize("code", [110, 111])
def test_token_error_codes_raise_auth_error(normalizer, code):
    with pytest.raises(AuthError):
        normalizer.normalize({"error_code": code, "error_msg": "Access token invalid or no longer valid"}, "text")


def test_other_error_codes_raise_backend_error(normalizer):
    with pytest.raises(BackendError) as exc_info:
        normalizer.normalize({"error_code": 18, "error_msg": "Open api qps request limit reached"}, "text")

    assert exc_info.value.error_code == 18
    assert "qps" in str(exc_info.value)


def test_zero_error_code_is_not_an_error(normalizer):
    result = normalizer.normalize({"error_code": 0, "text": "fine"}, "fine")
    assert result.corrected_text == "fine"


def test_error_object_raises_backend_error(normalizer):
    with pytest.raises(BackendError):
        normalizer.normalize({"error": {"message": "Insufficient Balance", "code": 402}}, "text")


def test_extract_json_object_ignores_braces_in_strings():
    content = 'prefix {"a": "curly } brace", "b": {"c": "\\"}"}} suffix {"other": 1}'

    assert json.loads(extract_json_object(content)) == {"a": "curly } brace", "b": {"c": '"}'}}


def test_extract_json_object_without_object():
    assert extract_json_object("no braces here") is None
    assert extract_json_object("{ never closed") is None


def test_find_sentence_offset_exact_from_cursor():
    assert find_sentence_offset("Same. Same.", "Same.", 0) == 0
    assert find_sentence_offset("Same. Same.", "Same.", 5) == 6


def test_find_sentence_offset_prefix_fallback():
    source = "The first line is fine. Second sentense has an error here."

    assert find_sentence_offset(source, "Second sentense has an error here!") == 24


def test_find_sentence_offset_keyword_fallback():
    assert find_sentence_offset("alpha beta gamma", "xx gamma yy") == 8


def test_find_sentence_offset_defaults_to_zero():
    assert find_sentence_offset("completely different", "nothing in common") == 0
    assert find_sentence_offset("anything", "") == 0


def test_item_text_used_when_nothing_else_differs(normalizer):
    result = normalizer.normalize({"item": {"text": "fixed text"}}, "fxed text")

    assert result.corrected_text == "fixed text"
    assert result.corrections == []


def test_item_text_used_when_correct_query_echoes_source(normalizer):
    payload = {"item": {"correct_query": "fxed text", "text": "fixed text"}}

    assert normalizer.normalize(payload, "fxed text").corrected_text == "fixed text"


def test_item_text_ignored_when_correct_query_differs(normalizer):
    payload = {"item": {"correct_query": "fixed text", "text": "fxed text"}}

    assert normalizer.normalize(payload, "fxed text").corrected_text == "fixed text"
