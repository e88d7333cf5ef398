import unittest

from calmirror.copy_tag import (
    Copy,
    Original,
    classify,
    copy_title_for,
    decode_source_id,
    encode_copy_title,
    is_copy,
    truncate_title,
)
from calmirror.models import EventRecord


class CopyTagTests(unittest.TestCase):
    def test_encode_matches_fixed_format(self) -> None:
        self.assertEqual(encode_copy_title("Team Stan", "s1"), "[COPY] Team Stan [ID: s1]")

    def test_encode_rejects_long_fragment(self) -> None:
        with self.assertRaises(ValueError):
            encode_copy_title("Team Standup", "s1")

    def test_truncate_title_has_no_ellipsis(self) -> None:
        self.assertEqual(truncate_title("Team Standup Meeting"), "Team Stand")
        self.assertEqual(truncate_title("Short"), "Short")
        self.assertEqual(truncate_title(""), "")

    def test_copy_title_for_event(self) -> None:
        event = EventRecord(calendar_id="a", uid="s1", summary="Standup (moved)")
        self.assertEqual(copy_title_for(event), "[COPY] Standup (m [ID: s1]")

    def test_is_copy_requires_prefix(self) -> None:
        self.assertTrue(is_copy("[COPY] Lunch [ID: x]"))
        self.assertTrue(is_copy("[COPY] no tag at all"))
        self.assertFalse(is_copy("Lunch [COPY] [ID: x]"))
        self.assertFalse(is_copy("Lunch"))
        self.assertFalse(is_copy(""))

    def test_decode_source_id(self) -> None:
        self.assertEqual(decode_source_id("[COPY] Lunch [ID: abc-123@google.com]"), "abc-123@google.com")

    def test_decode_malformed_tag_returns_none(self) -> None:
        self.assertIsNone(decode_source_id("[COPY] Lunch"))
        self.assertIsNone(decode_source_id("[COPY] Lunch [ID: ]"))
        self.assertIsNone(decode_source_id("[COPY] Lunch [ID: unterminated"))

    def test_decode_ignores_non_copy_titles(self) -> None:
        self.assertIsNone(decode_source_id("Lunch [ID: abc]"))

    def test_decode_prefers_trailing_tag_over_fragment(self) -> None:
        source = EventRecord(calendar_id="a", uid="real", summary="[ID: zz] standup")
        title = copy_title_for(source)
        self.assertEqual(title, "[COPY] [ID: zz] s [ID: real]")
        self.assertEqual(decode_source_id(title), "real")

    def test_decode_source_id_containing_bracket(self) -> None:
        source = EventRecord(calendar_id="a", uid="team]42", summary="Lunch")
        title = copy_title_for(source)
        self.assertEqual(title, "[COPY] Lunch [ID: team]42]")
        self.assertEqual(decode_source_id(title), "team]42")

    def test_decode_falls_back_when_title_was_extended(self) -> None:
        self.assertEqual(decode_source_id("[COPY] Lunch [ID: s1] (moved)"), "s1")

    def test_classify_variants(self) -> None:
        original = EventRecord(calendar_id="a", uid="1", summary="Lunch")
        copy = EventRecord(calendar_id="a", uid="2", summary="[COPY] Lunch [ID: 9]")
        broken = EventRecord(calendar_id="a", uid="3", summary="[COPY] Lunch")

        self.assertIsInstance(classify(original), Original)
        classified_copy = classify(copy)
        self.assertIsInstance(classified_copy, Copy)
        self.assertEqual(classified_copy.source_id, "9")
        classified_broken = classify(broken)
        self.assertIsInstance(classified_broken, Copy)
        self.assertIsNone(classified_broken.source_id)


if __name__ == "__main__":
    unittest.main()
