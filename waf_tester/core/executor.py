"""Sends single test requests and records their outcome."""

import aiohttp
import logging
import time
from datetime import datetime
from http import HTTPStatus
from typing import Dict, NamedTuple, Optional

from .models import (
    BLOCKED_STATUS_CODES,
    MAX_RESPONSE_BODY_CHARS,
    TRUNCATION_MARKER,
    RequestOutcome,
    TestConfig,
)
from .payloads import (
    NO_PAYLOADS,
    PayloadPool,
    build_attack_request,
    generate_404_url,
    select_user_agent,
    set_header,
)

REQUEST_TIMEOUT_SECONDS = 30


class PreparedRequest(NamedTuple):
    """The exact request that will go on the wire."""

    method: str
    url: str
    headers: Dict[str, str]
    body: str
    attack_info: str


def is_blocked(status: int) -> bool:
    """Whether a status code is a WAF or rate-limit rejection."""
    return status in BLOCKED_STATUS_CODES


def truncate_body(text: str) -> str:
    if len(text) > MAX_RESPONSE_BODY_CHARS:
        return text[:MAX_RESPONSE_BODY_CHARS] + TRUNCATION_MARKER
    return text


def status_text(status: int, reason: Optional[str] = None) -> str:
    try:
        return HTTPStatus(status).phrase
    except ValueError:
        return reason or ""


def join_headers(headers) -> Dict[str, str]:
    """Flatten a multi-dict of headers, joining repeated values with ', '."""
    joined: Dict[str, str] = {}
    for key in headers.keys():
        if key in joined:
            continue
        joined[key] = ", ".join(headers.getall(key))
    return joined


class RequestExecutor:
    """
    Builds, sends and times the requests of one test.

    ``execute`` never raises: transport failures end up in the outcome's
    error field with status 0.
    """

    def __init__(
        self,
        config: TestConfig,
        payload_pool: PayloadPool,
        session: aiohttp.ClientSession,
        timeout_seconds: float = REQUEST_TIMEOUT_SECONDS,
    ):
        self.config = config
        self.payload_pool = payload_pool
        self.session = session
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self.logger = logging.getLogger(__name__)

    def prepare(self) -> PreparedRequest:
        """Resolve URL, body and headers for the next request."""
        config = self.config
        method = config.http_method or "GET"
        url = config.target_url
        body = config.request_body
        headers = dict(config.custom_headers)
        attack_info = ""

        if config.traffic_type == "normal" and config.error_mode:
            url = generate_404_url(url, self.payload_pool.rng)
        elif config.is_attack:
            url, body, headers, attack_info = build_attack_request(config, self.payload_pool)

        if body:
            set_header(headers, "Content-Type", "application/json")

        # Injected attacks keep their scanner agent unless a custom one is set
        injected = config.is_attack and attack_info != NO_PAYLOADS
        if config.custom_user_agent or not injected:
            user_agent = select_user_agent(config, self.payload_pool)
            set_header(headers, "User-Agent", user_agent)

        return PreparedRequest(method, url, headers, body, attack_info)

    async def execute(self, request_id: int) -> RequestOutcome:
        """
        Send one request and return its outcome.

        Args:
            request_id: Sequence number of the request within the test

        Returns:
            RequestOutcome describing what was sent and what came back
        """
        timestamp = datetime.now()
        request = self.prepare()

        outcome = dict(
            id=request_id,
            timestamp=timestamp,
            url=request.url,
            method=request.method,
            request_headers=request.headers,
            request_body=request.body,
            attack_info=request.attack_info,
        )

        start_time = time.perf_counter()
        try:
            async with self.session.request(
                request.method,
                request.url,
                headers=request.headers,
                data=request.body.encode("utf-8") if request.body else None,
                timeout=self.timeout,
                allow_redirects=True,
            ) as response:
                elapsed_ms = int((time.perf_counter() - start_time) * 1000)

                outcome.update(
                    status=response.status,
                    status_text=status_text(response.status, response.reason),
                    response_headers=join_headers(response.headers),
                    response_time=elapsed_ms,
                    was_blocked=is_blocked(response.status),
                )

                try:
                    text = await response.text(errors="replace")
                    outcome["response_body"] = truncate_body(text)
                except Exception as e:
                    outcome["error"] = f"Failed to read response body: {e}"

        except Exception as e:
            elapsed_ms = int((time.perf_counter() - start_time) * 1000)
            self.logger.debug(f"Request {request_id} failed: {e!r}")
            outcome.update(
                status=0,
                response_time=elapsed_ms,
                error=f"Request failed: {_describe_error(e)}",
            )

        return RequestOutcome(**outcome)


def _describe_error(error: Exception) -> str:
    return str(error) or error.__class__.__name__
