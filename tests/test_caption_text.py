"""
Unit tests for caption_text.py: timestamp normalization and text cleanup.
"""

import unittest

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from caption_text import decode_and_clean, parse_millis, parse_timestamp


class TestParseTimestamp(unittest.TestCase):

    def test_clock_formats(self):
        self.assertEqual(parse_timestamp("01:02:03.5"), 3723.5)
        self.assertEqual(parse_timestamp("02:03.25"), 123.25)
        self.assertEqual(parse_timestamp("90"), 90)
        self.assertEqual(parse_timestamp("1.5"), 1.5)

    def test_srt_comma_decimal(self):
        self.assertEqual(parse_timestamp("00:00:01,500"), 1.5)

    def test_ttml_clock_values(self):
        self.assertEqual(parse_timestamp("1.5s"), 1.5)
        self.assertEqual(parse_timestamp("1500ms"), 1.5)

    def test_malformed_input_yields_zero(self):
        for value in ("bad", "", None, "1:2:3:4", "12:ab", "-5", "nan", "inf", "  "):
            with self.subTest(value=value):
                self.assertEqual(parse_timestamp(value), 0.0)

    def test_numeric_input(self):
        self.assertEqual(parse_timestamp(42), 42.0)


class TestParseMillis(unittest.TestCase):

    def test_millis_to_seconds(self):
        self.assertEqual(parse_millis("1500"), 1.5)
        self.assertEqual(parse_millis(250), 0.25)

    def test_malformed_millis(self):
        for value in ("abc", None, "-10", ""):
            with self.subTest(value=value):
                self.assertEqual(parse_millis(value), 0.0)


class TestDecodeAndClean(unittest.TestCase):

    def test_entities_literal_newline_and_whitespace(self):
        self.assertEqual(decode_and_clean("a &amp; b\\n  c"), "a & b c")

    def test_common_entities(self):
        self.assertEqual(decode_and_clean("it&#39;s &quot;fine&quot; &lt;3 &gt;"), "it's \"fine\" <3 >")

    def test_real_newlines_collapse(self):
        self.assertEqual(decode_and_clean("line one\nline two\r\n  end "), "line one line two end")

    def test_inline_markup_removed(self):
        self.assertEqual(
            decode_and_clean('&lt;font color=&quot;#E5E5E5&quot;&gt;styled&lt;/font&gt; text'),
            "styled text",
        )
        self.assertEqual(decode_and_clean("<s>struck</s> out"), "struck out")

    def test_double_escaped_entities(self):
        self.assertEqual(decode_and_clean("Tom &amp;amp; Jerry"), "Tom & Jerry")

    def test_comparison_operators_survive(self):
        self.assertEqual(decode_and_clean("5 &lt; 6 and 7 &gt; 2"), "5 < 6 and 7 > 2")

    def test_empty(self):
        self.assertEqual(decode_and_clean(""), "")
        self.assertEqual(decode_and_clean("   "), "")

    def test_idempotent(self):
        samples = [
            "a &amp; b\\n  c",
            "&amp;amp;lt;b&amp;amp;gt;",
            "<font color=\"#fff\">x</font>  y",
            "plain text",
            "&lt;i&gt;music&lt;/i&gt; \n [Applause]",
            "&" + "amp;" * 7 + "lt;",
        ]
        for sample in samples:
            with self.subTest(sample=sample):
                once = decode_and_clean(sample)
                self.assertEqual(decode_and_clean(once), once)

    def test_deeply_escaped_entity_fully_decoded(self):
        self.assertEqual(decode_and_clean("&" + "amp;" * 7 + "lt;"), "<")


if __name__ == '__main__':
    unittest.main()
