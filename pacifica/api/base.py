"""
Base HTTP client with robust error handling.

Thread-safe, with timeouts and retries for idempotent reads.

orjson is used for JSON parsing and request bodies (fast, releases GIL).
"""

import orjson
import requests
from requests.adapters import HTTPAdapter
import time
from typing import Optional, Any, Dict
import logging

from ..config import PacificaSettings
from ..exceptions import (
    APIError,
    TimeoutError,
    RateLimitError,
    AuthenticationError
)
from ..metrics import Metrics
from ..models import APIErrorBody
from ..utils.retry import RetryStrategy

logger = logging.getLogger(__name__)


def _decode_error_body(content: bytes) -> Optional[APIErrorBody]:
    """Decode a {error, code} body, or None when it has another shape."""
    try:
        return APIErrorBody.model_validate(orjson.loads(content))
    except (orjson.JSONDecodeError, ValueError, TypeError):
        return None


class BaseAPIClient:
    """
    Base HTTP client with error handling and retries.

    Thread-safe for concurrent use across strategies.
    """

    def __init__(
        self,
        base_url: str,
        settings: PacificaSettings,
        metrics: Optional[Metrics] = None,
        session: Optional[requests.Session] = None
    ):
        """
        Initialize base API client.

        Args:
            base_url: API base URL (paths are appended to it)
            settings: Client settings
            metrics: Optional metrics collector
            session: Optional pre-built session (tests)
        """
        self.base_url = base_url.rstrip("/")
        self.settings = settings
        self.metrics = metrics

        self.retry_strategy = RetryStrategy(
            max_retries=settings.max_retries,
            base_delay=1.0,
            max_delay=settings.retry_backoff_max,
            exponential_base=settings.retry_backoff_base
        )

        if session is None:
            session = requests.Session()
            adapter = HTTPAdapter(
                pool_connections=10,
                pool_maxsize=20,
                max_retries=0,  # We handle retries ourselves via RetryStrategy
                pool_block=False
            )
            session.mount('https://', adapter)
            session.mount('http://', adapter)
        self.session = session

        self.session.headers.update({
            "Content-Type": "application/json",
            "Accept": "application/json",
            "Connection": "keep-alive",
        })

        self.timeout = (settings.connect_timeout, settings.request_timeout)

        self._request_counter = 0

    def _raise_for_status(self, method: str, path: str, response: requests.Response) -> None:
        """Map a non-success response to the exception hierarchy."""
        body = _decode_error_body(response.content)
        if body is not None:
            detail = body.error
            decoded = body.model_dump()
        else:
            detail = response.text[:200]
            decoded = response.text

        error_msg = f"{method} {path} failed with {response.status_code}: {detail}"

        if response.status_code in (401, 403):
            raise AuthenticationError(error_msg, {"status_code": response.status_code})
        if response.status_code == 429:
            retry_after = response.headers.get("Retry-After")
            try:
                retry_after_seconds = float(retry_after) if retry_after else None
            except ValueError:
                retry_after_seconds = None
            raise RateLimitError(error_msg, endpoint=path, retry_after=retry_after_seconds)

        raise APIError(
            error_msg,
            status_code=response.status_code,
            response=decoded,
            code=body.code if body is not None else None
        )

    def _make_request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json_data: Optional[Dict[str, Any]] = None
    ) -> Any:
        """
        Make HTTP request with error handling.

        Args:
            method: HTTP method
            path: Request path
            params: Query parameters
            json_data: JSON body

        Returns:
            Decoded response JSON

        Raises:
            APIError: On HTTP errors
            TimeoutError: On timeout
            RateLimitError: On rate limit
            AuthenticationError: On 401/403
        """
        url = f"{self.base_url}{path}"

        self._request_counter += 1
        request_id = f"{method}:{path}:{self._request_counter}"

        if self.settings.log_requests:
            logger.debug(f"[{request_id}] {method} {url} params={params}")

        data = orjson.dumps(json_data) if json_data is not None else None

        start = time.time()
        status = "error"
        try:
            response = self.session.request(
                method=method,
                url=url,
                params=params,
                data=data,
                timeout=self.timeout
            )
            status = str(response.status_code)

            if response.status_code >= 400:
                self._raise_for_status(method, path, response)

            try:
                return orjson.loads(response.content)
            except orjson.JSONDecodeError as e:
                logger.error(f"Invalid JSON response: {response.text[:200]}")
                raise APIError(f"Invalid JSON response: {e}", status_code=response.status_code)

        except requests.exceptions.Timeout as e:
            logger.error(f"Request timeout: {method} {url}")
            raise TimeoutError(f"Request timeout: {e}") from e

        except requests.exceptions.ConnectionError as e:
            logger.error(f"Connection error: {method} {url}")
            raise APIError(f"Connection error: {e}") from e

        finally:
            if self.metrics:
                self.metrics.track_api_request(method, path, status)
                self.metrics.track_api_latency(method, path, time.time() - start)

    def get(
        self,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        retry: bool = True
    ) -> Any:
        """
        Make GET request.

        Args:
            path: Request path
            params: Query parameters
            retry: Whether to retry on failure

        Returns:
            Response JSON
        """
        if retry:
            return self.retry_strategy.execute(self._make_request, "GET", path, params=params)
        return self._make_request("GET", path, params=params)

    def post(
        self,
        path: str,
        json_data: Optional[Dict[str, Any]] = None,
        retry: bool = False
    ) -> Any:
        """
        Make POST request.

        Signed requests carry a timestamp and expiry window, so they are not
        retried by default.

        Args:
            path: Request path
            json_data: JSON body
            retry: Whether to retry on failure

        Returns:
            Response JSON
        """
        if retry:
            return self.retry_strategy.execute(self._make_request, "POST", path, json_data=json_data)
        return self._make_request("POST", path, json_data=json_data)

    def close(self) -> None:
        """Close session and cleanup resources."""
        self.session.close()
        logger.info("API client session closed")
