from __future__ import annotations

import json
import logging
from typing import Any, Optional

import requests

from habitsync.errors import TransportError, UnexpectedResponseError
from habitsync.models import SourceConfig, SourceDelta, SourceTask


FULL_SYNC_CURSOR = "*"


class TodoistClient:
    def __init__(
        self,
        config: SourceConfig,
        session: requests.Session | None = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.config = config
        self.session = session or requests.Session()
        self.logger = logger or logging.getLogger(__name__)

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.config.api_token}"}

    def _json(self, method: str, path: str, **kwargs: Any) -> Any:
        url = f"{self.config.base_url}{path}"
        try:
            response = self.session.request(
                method,
                url,
                headers=self._headers(),
                timeout=self.config.timeout_seconds,
                **kwargs,
            )
        except requests.RequestException as exc:
            raise TransportError(f"{method} {path} failed: {exc}") from exc
        if not response.ok:
            raise TransportError(
                f"{method} {path} returned HTTP {response.status_code}: {response.text[:300]}",
                status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError as exc:
            raise UnexpectedResponseError(f"{method} {path}: response body is not JSON") from exc

    def fetch_delta(self, cursor: str | None) -> SourceDelta:
        """Items changed since ``cursor``; an empty cursor asks for a full sync."""
        payload = self._json(
            "POST",
            "/sync",
            data={
                "sync_token": cursor or FULL_SYNC_CURSOR,
                "resource_types": json.dumps(["items"]),
            },
        )
        if not isinstance(payload, dict) or "sync_token" not in payload:
            raise UnexpectedResponseError("sync response has no sync_token")
        items = [SourceTask.from_dict(item) for item in payload.get("items") or [] if isinstance(item, dict)]
        self.logger.info("Fetched %d changed Todoist items", len(items))
        return SourceDelta(new_cursor=str(payload["sync_token"]), items=items)

    def fetch_labels(self) -> dict[str, str]:
        """Label reference -> display name. Items reference labels by name."""
        labels: dict[str, str] = {}
        cursor: str | None = None
        while True:
            params = {"cursor": cursor} if cursor else None
            payload = self._json("GET", "/labels", params=params)
            if isinstance(payload, list):
                results, cursor = payload, None
            elif isinstance(payload, dict):
                results, cursor = payload.get("results") or [], payload.get("next_cursor")
            else:
                raise UnexpectedResponseError("labels response is not a list")
            for item in results:
                name = str((item or {}).get("name", "")).strip()
                if name:
                    labels[name] = name
            if not cursor:
                break
        return labels
