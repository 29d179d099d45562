"""
Tests for the transcript orchestrator: pre-check, strategy order, fallback
on failure and the final error mapping.
"""

import unittest
from unittest.mock import AsyncMock, patch

import httpx

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

import transcript_service
from logging_setup import get_job_ctx
from transcript_errors import (
    CaptionsUnavailableError, ExtractionError, PlatformRequestError, RequestTimeoutError,
    TranscriptFetchError,
)
from transcript_models import TranscriptLine
from transcript_service import TranscriptService, indicates_captions_unavailable, is_valid_video_id
from youtube_fakes import HOME_URL, TIMEDTEXT_URL, VIDEO_ID, WATCH_URL, FakeYouTube, make_config, standard_site

LINES = [TranscriptLine("hello", 0.0, 1.0), TranscriptLine("world", 1.0, 1.0)]


def _events(records, name):
    return [r for r in records if getattr(r, "event", None) == name]


class TestHelpers(unittest.TestCase):

    def test_video_id_validation(self):
        self.assertTrue(is_valid_video_id("dQw4w9WgXcQ"))
        self.assertTrue(is_valid_video_id("a-b_c-d_e-f"))
        self.assertFalse(is_valid_video_id("short"))
        self.assertFalse(is_valid_video_id("dQw4w9WgXcQ!"))
        self.assertFalse(is_valid_video_id(None))

    def test_unavailable_markers(self):
        self.assertTrue(indicates_captions_unavailable("No captions data found in video page"))
        self.assertTrue(indicates_captions_unavailable("Captions disabled or private (API 403)"))
        self.assertTrue(indicates_captions_unavailable("internal_api strategy found no caption tracks"))
        self.assertFalse(indicates_captions_unavailable("Failed to fetch video page: 500 Internal Server Error"))
        self.assertFalse(indicates_captions_unavailable(None))


class TestStrategySelection(unittest.TestCase):

    def _names(self, **overrides):
        return [name for name, _ in TranscriptService(make_config(**overrides)).strategies()]

    def test_default_order_without_key(self):
        self.assertEqual(self._names(), ["direct", "internal_api"])

    def test_data_api_needs_key(self):
        self.assertEqual(self._names(youtube_api_key="key"), ["direct", "internal_api", "data_api"])

    def test_flags_disable_strategies(self):
        self.assertEqual(self._names(enable_direct=False), ["internal_api"])
        self.assertEqual(self._names(enable_direct=False, enable_internal_api=False), [])


class TestPipeline(unittest.IsolatedAsyncioTestCase):
    """Strategies and the pre-check are replaced with AsyncMocks."""

    def setUp(self):
        self.fake = FakeYouTube()
        self.session = self.fake.session()
        self.direct = AsyncMock(return_value=LINES)
        self.internal = AsyncMock(return_value=LINES)
        self.data_api = AsyncMock(return_value=LINES)
        self.precheck = AsyncMock(return_value=False)
        patches = [
            patch("transcript_service.fetch_direct", self.direct),
            patch("transcript_service.fetch_via_internal_api", self.internal),
            patch("transcript_service.fetch_via_data_api", self.data_api),
            patch("transcript_service.looks_unavailable", self.precheck),
        ]
        for p in patches:
            p.start()
            self.addCleanup(p.stop)

    async def asyncTearDown(self):
        await self.fake.aclose()

    def _service(self, **overrides):
        return TranscriptService(make_config(**overrides), session=self.session)

    async def test_first_strategy_wins(self):
        lines = await self._service().fetch_transcript(VIDEO_ID)

        self.assertEqual(lines, LINES)
        self.direct.assert_awaited_once_with(self.session, VIDEO_ID)
        self.internal.assert_not_awaited()

    async def test_precheck_short_circuits(self):
        self.precheck.return_value = True

        with self.assertRaises(CaptionsUnavailableError) as cm:
            await self._service().fetch_transcript(VIDEO_ID)

        self.assertEqual(cm.exception.video_id, VIDEO_ID)
        self.direct.assert_not_awaited()
        self.internal.assert_not_awaited()

    async def test_precheck_can_be_disabled(self):
        self.precheck.return_value = True

        await self._service(enable_precheck=False).fetch_transcript(VIDEO_ID)

        self.precheck.assert_not_awaited()

    async def test_timeout_moves_to_next_strategy(self):
        self.direct.side_effect = RequestTimeoutError("Request timed out after 15.0s (watch_page)")

        with self.assertLogs("transcript.events", level="INFO") as cm:
            lines = await self._service().fetch_transcript(VIDEO_ID)

        self.assertEqual(lines, LINES)
        failed = _events(cm.records, "strategy_failed")
        self.assertEqual(len(failed), 1)
        self.assertEqual(failed[0].strategy, "direct")
        self.assertEqual(failed[0].error_type, "timeout")

    async def test_empty_result_moves_to_next_strategy(self):
        self.direct.return_value = []

        lines = await self._service().fetch_transcript(VIDEO_ID)

        self.assertEqual(lines, LINES)
        self.internal.assert_awaited_once()

    async def test_all_fail_wraps_last_error(self):
        self.direct.side_effect = PlatformRequestError("Failed to fetch video page: 500 Internal Server Error",
                                                       status_code=500)
        last = ExtractionError("Failed to parse transcript XML/TTML content")
        self.internal.side_effect = last

        with self.assertRaises(TranscriptFetchError) as cm:
            await self._service().fetch_transcript(VIDEO_ID)

        self.assertEqual(str(cm.exception), "Failed to fetch transcript: Failed to parse transcript XML/TTML content")
        self.assertIs(cm.exception.cause, last)
        self.assertEqual(cm.exception.video_id, VIDEO_ID)

    async def test_unavailable_message_maps_to_captions_unavailable(self):
        self.direct.side_effect = PlatformRequestError("Failed to fetch caption file: 403 Forbidden", status_code=403)
        self.internal.side_effect = ExtractionError("No captions data found in video page")

        with self.assertRaises(CaptionsUnavailableError) as cm:
            await self._service().fetch_transcript(VIDEO_ID)

        self.assertIsInstance(cm.exception.__cause__, ExtractionError)

    async def test_last_error_decides(self):
        self.direct.side_effect = ExtractionError("No captions data found in video page")
        self.internal.side_effect = RequestTimeoutError("Request timed out after 10.0s (caption)")

        with self.assertRaises(TranscriptFetchError) as cm:
            await self._service().fetch_transcript(VIDEO_ID)

        self.assertIsInstance(cm.exception.cause, RequestTimeoutError)

    async def test_internal_api_none_is_captions_unavailable(self):
        self.direct.side_effect = PlatformRequestError("Failed to fetch caption file: 403 Forbidden", status_code=403)
        self.internal.return_value = None

        with self.assertRaises(CaptionsUnavailableError):
            await self._service().fetch_transcript(VIDEO_ID)

    async def test_data_api_runs_last_with_key(self):
        self.direct.side_effect = ExtractionError("No captions data found in video page")
        self.internal.return_value = None

        lines = await self._service(youtube_api_key="secret", preferred_language="de").fetch_transcript(VIDEO_ID)

        self.assertEqual(lines, LINES)
        self.data_api.assert_awaited_once_with(VIDEO_ID, "secret", "de")

    async def test_data_api_skipped_without_key(self):
        self.direct.side_effect = ExtractionError("No captions data found in video page")
        self.internal.return_value = None

        with self.assertRaises(CaptionsUnavailableError):
            await self._service().fetch_transcript(VIDEO_ID)
        self.data_api.assert_not_awaited()

    async def test_no_strategy_enabled(self):
        with self.assertRaises(TranscriptFetchError) as cm:
            await self._service(enable_direct=False, enable_internal_api=False).fetch_transcript(VIDEO_ID)
        self.assertIn("No transcript strategy is enabled", str(cm.exception))

    async def test_invalid_video_id(self):
        with self.assertRaises(ValueError):
            await self._service().fetch_transcript("not-a-video-id")
        self.precheck.assert_not_awaited()

    async def test_job_context_set_during_run_and_cleared(self):
        seen = {}

        def capture(session, video_id):
            seen.update(get_job_ctx())
            return LINES
        self.direct.side_effect = capture

        await self._service().fetch_transcript(VIDEO_ID, job_id="j-test")

        self.assertEqual(seen, {"job_id": "j-test", "video_id": VIDEO_ID})
        self.assertEqual(get_job_ctx(), {})

    async def test_job_context_cleared_after_failure(self):
        self.direct.side_effect = ExtractionError("boom")
        self.internal.side_effect = ExtractionError("boom")

        with self.assertRaises(TranscriptFetchError):
            await self._service().fetch_transcript(VIDEO_ID)
        self.assertEqual(get_job_ctx(), {})


class TestEndToEnd(unittest.IsolatedAsyncioTestCase):
    """Real strategies against the fake site."""

    async def asyncTearDown(self):
        await self.fake.aclose()

    async def test_direct_strategy_end_to_end(self):
        self.fake = standard_site()
        session = self.fake.session()

        lines = await TranscriptService(make_config(), session=session).fetch_transcript(VIDEO_ID)

        self.assertEqual([line.text for line in lines], ["Hello", "world", "again"])
        self.assertEqual(lines[1], TranscriptLine("world", 1.5, 2.0))
        # Pre-check and direct strategy share one watch-page fetch
        self.assertEqual(len(self.fake.requests_to(WATCH_URL)), 1)
        self.assertEqual(self.fake.requests_to(TIMEDTEXT_URL)[0].url.params["lang"], "en")

    async def test_precheck_end_to_end(self):
        self.fake = standard_site(tracks=[])
        session = self.fake.session()

        with self.assertRaises(CaptionsUnavailableError):
            await transcript_service.fetch_transcript(VIDEO_ID, session=session, config=make_config())
        self.assertEqual(self.fake.requests_to(TIMEDTEXT_URL), [])

    async def test_caption_failure_end_to_end(self):
        self.fake = standard_site()
        self.fake.add("GET", TIMEDTEXT_URL, lambda request: httpx.Response(503, text="unavailable"))
        session = self.fake.session()

        with self.assertRaises(TranscriptFetchError) as cm:
            await transcript_service.fetch_transcript(VIDEO_ID, session=session, config=make_config())

        self.assertIsInstance(cm.exception.cause, PlatformRequestError)
        self.assertEqual(cm.exception.cause.status_code, 503)

    async def test_undecodable_pages_end_to_end(self):
        self.fake = FakeYouTube()
        broken = lambda request: httpx.Response(200, content=b"not gzip", headers={
            "content-type": "text/html", "content-encoding": "gzip"})
        self.fake.add("GET", HOME_URL, broken)
        self.fake.add("GET", WATCH_URL, broken)
        session = self.fake.session()

        with self.assertRaises(TranscriptFetchError) as cm:
            await transcript_service.fetch_transcript(
                VIDEO_ID, session=session, config=make_config(enable_internal_api=False))

        self.assertIsInstance(cm.exception.cause, PlatformRequestError)
        self.assertIsInstance(cm.exception.cause.__cause__, httpx.DecodingError)


if __name__ == '__main__':
    unittest.main()
