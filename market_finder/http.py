"""JSON-over-HTTP client for catalog endpoints, with retry and backoff."""
from __future__ import annotations

import logging
import random
import time
from typing import Any, Dict, Optional

import requests

logger = logging.getLogger(__name__)

RETRYABLE_STATUSES = frozenset({429, 500, 502, 503, 504})


class HttpClient:
    def __init__(
        self,
        timeout: float = 30,
        retry_max: int = 3,
        backoff_base: float = 0.5,
        backoff_max: float = 8.0,
        user_agent: Optional[str] = None,
    ) -> None:
        self.timeout = timeout
        self.retry_max = max(1, int(retry_max))
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max
        self.session = requests.Session()
        if user_agent:
            self.session.headers["User-Agent"] = user_agent

    def get_json(self, url: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return self._request_json("GET", url, params=params)

    def post_form(self, url: str, data: Dict[str, Any]) -> Any:
        """POST form-encoded ``data`` and decode the JSON body."""
        return self._request_json("POST", url, data=data)

    def close(self) -> None:
        self.session.close()

    def _request_json(
        self,
        method: str,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> Any:
        attempt = 0
        while True:
            attempt += 1
            last_attempt = attempt >= self.retry_max
            try:
                resp = self.session.request(
                    method, url, params=params, data=data, timeout=self.timeout
                )
            except requests.RequestException as exc:
                logger.warning("%s %s failed (attempt %d/%d): %s", method, url, attempt, self.retry_max, exc)
                if last_attempt:
                    raise
                time.sleep(self._backoff_delay(attempt))
                continue

            if resp.status_code == 200:
                try:
                    return resp.json()
                except ValueError:
                    logger.error("%s %s returned a body that is not JSON", method, url)
                    raise

            if resp.status_code not in RETRYABLE_STATUSES or last_attempt:
                logger.error("%s %s gave HTTP %s", method, url, resp.status_code)
                resp.raise_for_status()
                raise requests.HTTPError(f"Unexpected HTTP {resp.status_code} from {url}", response=resp)

            delay = self._retry_after_delay(resp)
            if delay is None:
                delay = self._backoff_delay(attempt)
            logger.warning(
                "%s %s gave HTTP %s (attempt %d/%d); retrying in %.1fs",
                method,
                url,
                resp.status_code,
                attempt,
                self.retry_max,
                delay,
            )
            time.sleep(delay)

    def _backoff_delay(self, attempt: int) -> float:
        exponential = min(self.backoff_base * (2 ** (attempt - 1)), self.backoff_max)
        return exponential + random.uniform(0, self.backoff_base)

    def _retry_after_delay(self, resp: requests.Response) -> Optional[float]:
        header = resp.headers.get("Retry-After")
        if not header:
            return None
        try:
            seconds = float(header)
        except ValueError:
            # HTTP-date form is not supported; fall back to backoff.
            return None
        return max(0.0, min(seconds, self.backoff_max))
