import unittest

from core.stream.deltas import decode_delta, extract_text, read_delta
from core.stream.events import parse_line, unwrap_data
from core.contracts.models import EventKind


class TestDecodeDelta(unittest.TestCase):

    def test_plain_json_string(self):
        self.assertEqual(decode_delta('"hi"'), "hi")

    def test_not_json_returns_none(self):
        self.assertIsNone(decode_delta("plain text"))
        self.assertIsNone(decode_delta("{broken"))

    def test_json_without_text_returns_empty(self):
        self.assertEqual(decode_delta("42"), "")
        self.assertEqual(decode_delta("null"), "")
        self.assertEqual(decode_delta('{"id": "chatcmpl-1"}'), "")

    def test_choices_with_delta_content(self):
        payload = '{"choices":[{"delta":{"content":"a"}},{"delta":{"content":"b"}}]}'
        self.assertEqual(decode_delta(payload), "ab")

    def test_choice_falls_back_to_message(self):
        payload = '{"choices":[{"message":{"content":"full"}}]}'
        self.assertEqual(decode_delta(payload), "full")

    def test_empty_object_delta_does_not_fall_back(self):
        payload = '{"choices":[{"delta":{},"message":{"content":"full"}}]}'
        self.assertEqual(decode_delta(payload), "")

    def test_null_delta_falls_back_to_message(self):
        payload = '{"choices":[{"delta":null,"message":{"content":"full"}}]}'
        self.assertEqual(decode_delta(payload), "full")

    def test_top_level_delta_and_message(self):
        self.assertEqual(decode_delta('{"delta":{"content":"d"}}'), "d")
        self.assertEqual(decode_delta('{"delta":"raw"}'), "raw")
        self.assertEqual(decode_delta('{"message":{"text":"m"}}'), "m")

    def test_object_read_as_delta(self):
        self.assertEqual(decode_delta('{"content":"c"}'), "c")
        self.assertEqual(decode_delta('{"text":"t"}'), "t")

    def test_content_parts(self):
        payload = '{"content":["a", {"text":"b"}, {"type":"image"}, 3]}'
        self.assertEqual(decode_delta(payload), "ab")

    def test_content_wins_over_text(self):
        self.assertEqual(decode_delta('{"content":"c","text":"t"}'), "c")

    def test_array_shapes(self):
        payload = '[{"delta":{"content":"a"}}, {"choices":[{"delta":{"content":"b"}}]}, "c", {"text":"d"}]'
        self.assertEqual(decode_delta(payload), "abcd")

    def test_choices_that_are_not_objects_are_skipped(self):
        self.assertEqual(extract_text({"choices": ["x", None, {"delta": "y"}]}), "y")

    def test_read_delta_ignores_falsy(self):
        self.assertEqual(read_delta(None), "")
        self.assertEqual(read_delta(""), "")
        self.assertEqual(read_delta(0), "")


class TestParseLine(unittest.TestCase):

    def test_markers(self):
        self.assertEqual(parse_line("event: end").kind, EventKind.END)
        self.assertEqual(parse_line("event: error").kind, EventKind.ERROR)
        self.assertEqual(parse_line("data: [DONE]").kind, EventKind.END)

    def test_data_payload(self):
        event = parse_line('data:   {"a": 1}')
        self.assertEqual(event.kind, EventKind.DATA)
        self.assertEqual(event.payload, '{"a": 1}')

    def test_unrecognized_lines(self):
        self.assertIsNone(parse_line("event: message"))
        self.assertIsNone(parse_line("hello"))

    def test_unwrap_data(self):
        self.assertEqual(unwrap_data("data: data: x"), "x")
        self.assertEqual(unwrap_data("data: data: data: x"), "data: x")
        self.assertIsNone(unwrap_data("x"))


if __name__ == "__main__":
    unittest.main()
