"""HTTP session for the BioMart client."""

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from exprx.config import BioMartConfig

RETRY_STATUSES = (500, 502, 503, 504)


class TimeoutHTTPAdapter(HTTPAdapter):
    """HTTPAdapter that applies a default timeout to requests sent without one."""

    def __init__(self, *args, timeout: float, **kwargs):
        self.timeout = timeout
        super().__init__(*args, **kwargs)

    def send(self, request, **kwargs):
        if kwargs.get("timeout") is None:
            kwargs["timeout"] = self.timeout
        return super().send(request, **kwargs)


def create_session(config: BioMartConfig) -> requests.Session:
    """
    Create a requests Session for ``config.url``.

    The session carries the configured User-Agent and timeout. Failed
    requests are retried ``config.max_retries`` times with exponential
    backoff; with 0 retries the first error is raised.

    Args:
        config: BioMart connection settings

    Returns:
        Configured requests.Session
    """
    retries = Retry(
        total=config.max_retries,
        backoff_factor=0.5,
        status_forcelist=RETRY_STATUSES,
        allowed_methods=("GET",),
        raise_on_status=False,
    )
    adapter = TimeoutHTTPAdapter(max_retries=retries, timeout=config.timeout)

    session = requests.Session()
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    session.headers.update({"User-Agent": config.user_agent})
    return session
