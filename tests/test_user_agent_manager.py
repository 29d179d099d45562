"""
Unit tests for UserAgentManager request headers.
"""

import unittest

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from user_agent_manager import UserAgentManager


class TestUserAgentManager(unittest.TestCase):
    """Test browser-like header generation per request kind"""

    def setUp(self):
        self.ua_manager = UserAgentManager()

    def test_page_headers(self):
        headers = self.ua_manager.get_headers()

        self.assertEqual(headers['Accept-Language'], 'en-US,en;q=0.9')
        self.assertIn('text/html', headers['Accept'])
        self.assertEqual(headers['Referer'], 'https://www.youtube.com/')
        self.assertNotIn('Origin', headers)
        self.assertTrue(self.ua_manager.validate_user_agent(headers['User-Agent']))

    def test_caption_headers_refer_to_watch_page(self):
        headers = self.ua_manager.get_headers(kind="caption", video_id="dQw4w9WgXcQ")

        self.assertEqual(headers['Referer'], 'https://www.youtube.com/watch?v=dQw4w9WgXcQ')
        self.assertEqual(headers['Accept'], '*/*')

    def test_api_headers(self):
        headers = self.ua_manager.get_headers(kind="api", video_id="dQw4w9WgXcQ")

        self.assertEqual(headers['Origin'], 'https://www.youtube.com')
        self.assertEqual(headers['Content-Type'], 'application/json')
        self.assertEqual(headers['Accept'], 'application/json')

    def test_additional_headers_override(self):
        headers = self.ua_manager.get_headers(additional_headers={'Accept-Language': 'de-DE', 'X-Test': '1'})

        self.assertEqual(headers['Accept-Language'], 'de-DE')
        self.assertEqual(headers['X-Test'], '1')

    def test_request_types(self):
        for request_type in ['default', 'fallback', 'firefox']:
            with self.subTest(request_type=request_type):
                user_agent = self.ua_manager.get_user_agent(request_type)
                self.assertEqual(user_agent, UserAgentManager.USER_AGENT_CONFIG[request_type])

    def test_unknown_request_type_falls_back(self):
        with self.assertLogs('user_agent_manager', level='WARNING'):
            user_agent = self.ua_manager.get_user_agent('edge')
        self.assertEqual(user_agent, UserAgentManager.USER_AGENT_CONFIG['default'])

    def test_validate_user_agent(self):
        self.assertTrue(UserAgentManager.validate_user_agent(UserAgentManager.USER_AGENT_CONFIG['firefox']))
        self.assertFalse(UserAgentManager.validate_user_agent('curl/8.0'))
        self.assertFalse(UserAgentManager.validate_user_agent(''))
        self.assertFalse(UserAgentManager.validate_user_agent('x' * 80))


if __name__ == '__main__':
    unittest.main()
