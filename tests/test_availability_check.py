"""
Tests for the availability pre-check.
"""

import unittest

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from availability_check import find_negative_signals, looks_unavailable
from youtube_fakes import (
    HOME_URL, VIDEO_ID, WATCH_URL, FakeYouTube, caption_track, page_with_tracks, respond, watch_page,
)


class TestNegativeSignals(unittest.TestCase):

    def test_each_signal(self):
        cases = {
            "empty_caption_tracks": '<script>{"captionTracks": [ ]}</script>',
            "not_crawlable": '<script>{"isCrawlable":false}</script>',
            "subtitles_button_hidden": '<script>{"hideSubtitlesButton": true}</script>',
        }
        for name, script in cases.items():
            with self.subTest(signal=name):
                self.assertEqual(find_negative_signals(watch_page(script)), [name])

    def test_track_entry_overrides_signals(self):
        html = page_with_tracks([caption_track("en")]).replace(
            "</body>", '<script>{"isCrawlable":false,"hideSubtitlesButton":true}</script></body>')
        self.assertEqual(find_negative_signals(html), [])

    def test_timedtext_url_overrides_signals(self):
        html = watch_page('<script>{"isCrawlable":false}</script><a href="/api/timedtext?v=x">cc</a>')
        self.assertEqual(find_negative_signals(html), [])

    def test_clean_page(self):
        self.assertEqual(find_negative_signals(watch_page()), [])
        self.assertEqual(find_negative_signals(""), [])


class TestLooksUnavailable(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        self.fake = FakeYouTube()
        self.fake.add("GET", HOME_URL, respond(text=watch_page()))

    async def asyncTearDown(self):
        await self.fake.aclose()

    async def test_empty_track_list_is_unavailable(self):
        self.fake.add("GET", WATCH_URL, respond(text=page_with_tracks([])))
        session = self.fake.session()

        with self.assertLogs("transcript.events", level="INFO") as cm:
            self.assertTrue(await looks_unavailable(session, VIDEO_ID))
        self.assertIn("precheck_unavailable", [getattr(r, "event", None) for r in cm.records])

    async def test_tracks_present(self):
        self.fake.add("GET", WATCH_URL, respond(text=page_with_tracks([caption_track("en")])))
        session = self.fake.session()

        self.assertFalse(await looks_unavailable(session, VIDEO_ID))

    async def test_page_cached_for_strategies(self):
        page = page_with_tracks([caption_track("en")])
        self.fake.add("GET", WATCH_URL, respond(text=page))
        session = self.fake.session()

        await looks_unavailable(session, VIDEO_ID)

        self.assertEqual(session.html_cache.get(VIDEO_ID), page)

    async def test_fetch_failure_is_inconclusive(self):
        self.fake.add("GET", WATCH_URL, respond(status=500, text="error"))
        session = self.fake.session()

        with self.assertLogs("transcript.events", level="INFO") as cm:
            self.assertFalse(await looks_unavailable(session, VIDEO_ID))
        self.assertIn("precheck_inconclusive", [getattr(r, "event", None) for r in cm.records])

    async def test_short_page_is_inconclusive(self):
        self.fake.add("GET", WATCH_URL, respond(text='{"captionTracks":[]}'))
        session = self.fake.session()

        self.assertFalse(await looks_unavailable(session, VIDEO_ID))


if __name__ == '__main__':
    unittest.main()
