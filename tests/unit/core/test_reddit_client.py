"""Tests for the Reddit post metadata client."""
import unittest
from unittest.mock import Mock

import requests

from core.reddit_client import REDDIT_INFO_URL, RedditClient


class TestRedditClient(unittest.TestCase):

    def setUp(self):
        self.session = Mock()
        self.session.headers = {}
        self.response = Mock()
        self.response.json.return_value = {
            'data': {'children': [{'kind': 't3', 'data': {'title': 'A Post'}}]}
        }
        self.session.get.return_value = self.response
        self.client = RedditClient(session=self.session, request_timeout_seconds=5)

    def test_fetch_post_title(self):
        self.assertEqual(self.client.fetch_post_title("t3_abc"), "A Post")
        self.session.get.assert_called_once_with(
            REDDIT_INFO_URL, params={'id': 't3_abc'}, timeout=5
        )

    def test_bare_id_gets_prefix(self):
        self.client.fetch_post_title("abc")
        self.assertEqual(self.session.get.call_args.kwargs['params'], {'id': 't3_abc'})

    def test_sets_user_agent(self):
        self.assertIn('User-Agent', self.session.headers)

    def test_no_post_found(self):
        self.response.json.return_value = {'data': {'children': []}}
        self.assertIsNone(self.client.fetch_post_title("t3_gone"))

    def test_http_error_propagates(self):
        self.response.raise_for_status.side_effect = requests.HTTPError("500")
        with self.assertRaises(requests.HTTPError):
            self.client.fetch_post_title("t3_abc")
        self.session.get.assert_called_once()


if __name__ == '__main__':
    unittest.main()
