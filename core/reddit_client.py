"""Reddit API client used to resolve parent post titles for comments."""

import logging
from typing import Optional

import requests

logger = logging.getLogger(__name__)

REDDIT_INFO_URL = "https://www.reddit.com/api/info.json"
DEFAULT_USER_AGENT = "modqueue-notifier/1.0"


class RedditClient:
    """
    Minimal read-only client for post metadata.

    One request per lookup and no retries: callers sit behind a cache whose
    miss path must cost at most one upstream fetch.
    """

    def __init__(
        self,
        user_agent: str = DEFAULT_USER_AGENT,
        request_timeout_seconds: int = 10,
        session: Optional[requests.Session] = None
    ):
        self.request_timeout_seconds = request_timeout_seconds
        self.session = session or requests.Session()
        self.session.headers.update({'User-Agent': user_agent})

    def fetch_post_title(self, post_id: str) -> Optional[str]:
        """
        Return the title of a post by fullname (t3_...) or bare id.

        Raises:
            requests.RequestException: On transport errors or non-2xx responses
        """
        fullname = post_id if post_id.startswith("t3_") else f"t3_{post_id}"
        response = self.session.get(
            REDDIT_INFO_URL,
            params={'id': fullname},
            timeout=self.request_timeout_seconds
        )
        response.raise_for_status()

        children = response.json().get('data', {}).get('children', [])
        if not children:
            logger.info(f"No post found for {fullname}")
            return None
        return children[0].get('data', {}).get('title')
