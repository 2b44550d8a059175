import json

import pytest

from core.contracts.models import SessionStatus
from core.stream.aggregator import StreamAggregator


def sse(*lines: str) -> str:
    return "".join(f"{line}\n\n" for line in lines)


def delta(text: str) -> str:
    return "data: " + json.dumps({"choices": [{"delta": {"content": text}}]}, ensure_ascii=False)


def run(chunks):
    updates = []
    aggregator = StreamAggregator(on_update=updates.append)
    for chunk in chunks:
        if not aggregator.feed(chunk):
            break
    aggregator.close()
    return aggregator, updates


def test_choice_deltas_concatenate_until_end_marker():
    stream = sse(
        'data: {"choices":[{"delta":{"content":"Hel"}}]}',
        'data: {"choices":[{"delta":{"content":"lo"}}]}',
        "event: end",
    )
    aggregator, updates = run([stream])

    assert aggregator.text == "Hello"
    assert aggregator.status is SessionStatus.COMPLETED
    assert aggregator.error is None
    assert updates == ["Hel", "Hello"]


def test_done_sentinel_with_nothing_accumulated():
    aggregator, updates = run([sse("data: [DONE]")])

    assert aggregator.status is SessionStatus.COMPLETED
    assert aggregator.text == ""
    assert updates == []


def test_double_wrapped_data_line():
    aggregator, _ = run([sse('data: data: {"text":"X"}')])
    assert aggregator.text == "X"


def test_double_wrapped_done_sentinel_ends_stream():
    aggregator, _ = run([sse(delta("a"), "data: data: [DONE]", delta("b"))])
    assert aggregator.text == "a"
    assert aggregator.status is SessionStatus.COMPLETED


def test_only_two_unwraps_are_attempted():
    # Third prefix stays in the payload, which then fails JSON and is discarded.
    aggregator, _ = run([sse(delta("ok"), 'data: data: data: {"text":"X"}')])
    assert aggregator.text == "ok"


def test_error_event_keeps_accumulated_text():
    stream = sse(delta("partial"), "event: error\ndata: rate limited", delta("never"))
    aggregator, _ = run([stream])

    assert aggregator.status is SessionStatus.FAILED
    assert aggregator.error == "rate limited"
    assert aggregator.text == "partial"


def test_error_event_without_message():
    aggregator, _ = run(["event: error\n\n"])
    assert aggregator.status is SessionStatus.FAILED
    assert aggregator.error == "Upstream error"


def test_end_marker_stops_processing_rest_of_chunk():
    aggregator, _ = run([sse(delta("a"), "event: end", delta("b"))])
    assert aggregator.text == "a"


def test_feed_reports_terminal_state():
    aggregator = StreamAggregator()
    assert aggregator.feed(sse(delta("a"))) is True
    assert aggregator.feed("event: end\n") is False
    assert aggregator.feed(sse(delta("b"))) is False
    assert aggregator.text == "a"


def test_stream_close_without_marker_completes():
    aggregator, _ = run([sse(delta("a"), delta("b"))])
    assert aggregator.status is SessionStatus.COMPLETED
    assert aggregator.text == "ab"


def test_trailing_partial_line_is_flushed_on_close():
    aggregator, _ = run([delta("a") + "\n", delta("tail")])
    assert aggregator.text == "atail"


def test_malformed_line_after_first_fragment_is_discarded():
    aggregator, _ = run([sse(delta("good"), "data: {not json", delta(" text"))])
    assert aggregator.text == "good text"
    assert aggregator.status is SessionStatus.COMPLETED


def test_non_json_first_fragment_is_used_verbatim():
    aggregator, _ = run([sse("data: plain words", "data: more plain")])
    assert aggregator.text == "plain words"


def test_unprefixed_first_line_falls_back_to_raw_text():
    aggregator, _ = run(["hello there\n", "ignored later\n"])
    assert aggregator.text == "hello there"


def test_sse_field_lines_are_ignored():
    aggregator, _ = run([": keep-alive\nid: 4\nretry: 1000\nevent: message\n" + sse(delta("x"))])
    assert aggregator.text == "x"


def test_whitespace_and_crlf_are_tolerated():
    aggregator, _ = run(["   " + delta("a") + "   \r\n\r\n", "\t" + delta("b") + "\r\n"])
    assert aggregator.text == "ab"


def test_role_only_delta_adds_nothing():
    stream = sse('data: {"choices":[{"delta":{"role":"assistant"}}]}', delta("x"))
    aggregator, updates = run([stream])
    assert aggregator.text == "x"
    assert updates == ["x"]


def test_multibyte_character_split_across_chunks():
    payload = sse(delta("naïve café 日本 🎉")).encode("utf-8")
    cut = payload.index("日".encode("utf-8")) + 1
    aggregator, _ = run([payload[:cut], payload[cut:]])

    assert aggregator.text == "naïve café 日本 🎉"
    assert "�" not in aggregator.text


@pytest.mark.parametrize("size", [1, 2, 3, 5, 7, 64])
def test_chunk_boundaries_do_not_change_result(size):
    stream = (
        sse(
            'data: {"choices":[{"delta":{"content":"Résumé: "}}]}',
            ": comment",
            'data: data: {"choices":[{"delta":{"content":"ok ✅"}}]}',
            "data: {broken",
            '[{"delta":"!"}]',
            'data: [{"choices":[{"delta":{"content":" done"}}]}]',
        )
        + "event: end\n\n"
    ).encode("utf-8")
    whole, _ = run([stream])
    sliced, _ = run([stream[i:i + size] for i in range(0, len(stream), size)])

    assert whole.text == "Résumé: ok ✅ done"
    assert sliced.text == whole.text
    assert sliced.status is whole.status is SessionStatus.COMPLETED


def test_str_chunks_are_accepted():
    aggregator, _ = run([delta("a")[:10], delta("a")[10:] + "\n"])
    assert aggregator.text == "a"


def test_deeply_nested_line_is_discarded_like_any_malformed_line():
    nested = "data: " + "[" * 100000 + "]" * 100000
    aggregator, _ = run([sse(delta("good"), nested, delta(" text"))])

    assert aggregator.status is SessionStatus.COMPLETED
    assert aggregator.text == "good text"
