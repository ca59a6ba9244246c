"""HTTP client for the Zendesk REST API."""
from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import urljoin

import requests

from .errors import ErrorTracker, call_with_retry

LOGGER = logging.getLogger(__name__)


@dataclass
class ZendeskAuth:
    email: str
    api_token: str

    def as_tuple(self) -> tuple[str, str]:
        return (f"{self.email}/token", self.api_token)


class ZendeskClient:
    """Wrapper around the Zendesk API used for tickets, tags and Help Center articles."""

    def __init__(
        self,
        *,
        subdomain: str,
        email: str,
        api_token: str,
        verify_ssl: bool = True,
        timeout: int = 30,
        rate_limit_per_minute: Optional[int] = None,
        max_retries: int = 3,
        retry_base_delay: float = 1.0,
        error_tracker: Optional[ErrorTracker] = None,
    ) -> None:
        if not (subdomain and email and api_token):
            raise ValueError("Zendesk subdomain, email and api_token are required")
        self.subdomain = self._normalise_subdomain(subdomain)
        self.base_url = f"https://{self.subdomain}.zendesk.com/api/v2"
        self.session = requests.Session()
        self.session.auth = ZendeskAuth(email, api_token).as_tuple()
        self.session.headers.update({
            "Content-Type": "application/json",
            "Accept": "application/json",
        })
        self.verify_ssl = verify_ssl
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_base_delay = retry_base_delay
        self.error_tracker = error_tracker
        self.rate_limit_per_minute = rate_limit_per_minute
        self._sleep_between_requests = (
            60.0 / rate_limit_per_minute if rate_limit_per_minute else 0.0
        )
        self._last_request_time: float | None = None
        self._rate_lock = threading.Lock()

    @classmethod
    def from_config(
        cls, config: Dict[str, Any], *, error_tracker: Optional[ErrorTracker] = None
    ) -> "ZendeskClient":
        section = config.get("zendesk") or {}
        return cls(
            subdomain=section.get("subdomain", ""),
            email=section.get("email", ""),
            api_token=section.get("api_token", ""),
            verify_ssl=section.get("verify_ssl", True),
            timeout=int(section.get("timeout", 30)),
            rate_limit_per_minute=section.get("rate_limit_per_minute"),
            max_retries=int(section.get("max_retries", 3)),
            retry_base_delay=float(section.get("retry_base_delay", 1.0)),
            error_tracker=error_tracker,
        )

    @property
    def agent_url(self) -> str:
        return f"https://{self.subdomain}.zendesk.com/agent"

    def ticket_url(self, ticket_id: int) -> str:
        return f"{self.agent_url}/tickets/{ticket_id}"

    # -- Low level request helpers -------------------------------------------------
    def _request(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        url = self._build_url(path)
        return call_with_retry(
            lambda: self._send(method, url, **kwargs),
            operation_name=f"{method} {path}",
            max_retries=self.max_retries,
            base_delay=self.retry_base_delay,
            tracker=self.error_tracker,
        )

    def _reserve_request_slot(self) -> float:
        """Claim the next request start time and return how long to wait for it."""
        with self._rate_lock:
            now = time.monotonic()
            if not self._sleep_between_requests or self._last_request_time is None:
                self._last_request_time = now
                return 0.0
            start = max(now, self._last_request_time + self._sleep_between_requests)
            self._last_request_time = start
            return start - now

    def _send(self, method: str, url: str, **kwargs: Any) -> Dict[str, Any]:
        remaining = self._reserve_request_slot()
        if remaining > 0:
            LOGGER.debug(
                "Sleeping %.2fs before %s %s to respect rate limits",
                remaining,
                method,
                url,
            )
            time.sleep(remaining)
        LOGGER.debug("HTTP %s %s payload=%s", method, url, kwargs.get("json"))
        response = self.session.request(
            method,
            url,
            timeout=self.timeout,
            verify=self.verify_ssl,
            **kwargs,
        )
        LOGGER.debug("Response status=%s", response.status_code)
        response.raise_for_status()
        if response.content:
            return response.json()
        return {}

    @staticmethod
    def _normalise_subdomain(subdomain: str) -> str:
        """Accept ``acme``, ``acme.zendesk.com`` or a full URL."""
        cleaned = subdomain.strip().rstrip("/")
        for prefix in ("https://", "http://"):
            if cleaned.lower().startswith(prefix):
                cleaned = cleaned[len(prefix):]
        cleaned = cleaned.split("/", 1)[0]
        if cleaned.lower().endswith(".zendesk.com"):
            cleaned = cleaned[: -len(".zendesk.com")]
        return cleaned

    def _build_url(self, path: str) -> str:
        return urljoin(self.base_url.rstrip("/") + "/", path.lstrip("/"))

    # -- Ticket search -------------------------------------------------------------
    def search(
        self, query: str, *, sort_by: str = "created_at", sort_order: str = "desc"
    ) -> Dict[str, Any]:
        """Run a search query and return the raw payload (``results`` and ``count``)."""
        LOGGER.debug("Searching Zendesk with query %r", query)
        params = {"query": query, "sort_by": sort_by, "sort_order": sort_order}
        return self._request("GET", "/search.json", params=params)

    def get_recent_tickets(
        self, hours_back: int = 24, *, now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        current = now or datetime.now(timezone.utc)
        start = (current - timedelta(hours=hours_back)).astimezone(timezone.utc)
        timestamp = start.strftime("%Y-%m-%dT%H:%M:%SZ")
        return self.search(f"type:ticket created>{timestamp}")

    def get_tickets_by_status(self, status: str) -> Dict[str, Any]:
        return self.search(f"type:ticket status:{status}")

    # -- Tickets -------------------------------------------------------------------
    def get_ticket(self, ticket_id: int) -> Dict[str, Any]:
        payload = self._request("GET", f"/tickets/{ticket_id}.json")
        return payload.get("ticket", {}) if isinstance(payload, dict) else {}

    def get_ticket_comments(self, ticket_id: int) -> List[Dict[str, Any]]:
        payload = self._request("GET", f"/tickets/{ticket_id}/comments.json")
        comments = payload.get("comments") if isinstance(payload, dict) else None
        return comments if isinstance(comments, list) else []

    def update_ticket(self, ticket_id: int, data: Dict[str, Any]) -> Dict[str, Any]:
        LOGGER.info("Updating ticket %s with payload %s", ticket_id, data)
        payload = self._request("PUT", f"/tickets/{ticket_id}.json", json={"ticket": data})
        return payload.get("ticket", {}) if isinstance(payload, dict) else {}

    def update_tags(self, ticket_id: int, tags: Sequence[str]) -> Dict[str, Any]:
        """Replace the ticket's tag set with ``tags``."""
        return self.update_ticket(ticket_id, {"tags": list(tags)})

    def add_tags(self, ticket_id: int, tags: Sequence[str]) -> Dict[str, Any]:
        """Append ``tags`` to the ticket without touching its existing tags."""
        if not tags:
            raise ValueError("Tags must be a non-empty list")
        return self.update_ticket(ticket_id, {"additional_tags": list(tags)})

    def create_ticket(
        self,
        *,
        subject: str,
        description: str,
        status: str = "new",
        priority: str = "normal",
        ticket_type: Optional[str] = None,
        tags: Optional[Sequence[str]] = None,
    ) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "subject": subject,
            "comment": {"body": description},
            "status": status,
            "priority": priority,
        }
        if ticket_type:
            data["type"] = ticket_type
        if tags:
            data["tags"] = list(tags)
        LOGGER.info("Creating ticket %r", subject)
        payload = self._request("POST", "/tickets.json", json={"ticket": data})
        return payload.get("ticket", {}) if isinstance(payload, dict) else {}

    # -- Help Center ---------------------------------------------------------------
    def search_articles(self, query: str) -> List[Dict[str, Any]]:
        payload = self._request("GET", "/help_center/articles/search.json", params={"query": query})
        results = payload.get("results") if isinstance(payload, dict) else None
        return results if isinstance(results, list) else []

    def list_articles(self) -> List[Dict[str, Any]]:
        payload = self._request("GET", "/help_center/articles.json")
        articles = payload.get("articles") if isinstance(payload, dict) else None
        return articles if isinstance(articles, list) else []

    def test_connection(self) -> bool:
        try:
            self._request("GET", "/tickets.json", params={"per_page": 1})
        except requests.RequestException as exc:
            LOGGER.error("Zendesk API connection failed: %s", exc)
            return False
        LOGGER.info("Zendesk API connection successful")
        return True
