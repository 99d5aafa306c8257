from __future__ import annotations

import logging
from typing import Any, Optional

import requests

from habitsync.errors import TransportError, UnexpectedResponseError
from habitsync.models import TargetConfig, TargetTask


class HabiticaClient:
    """Thin client over the Habitica v3 task endpoints used by the sync."""

    def __init__(
        self,
        config: TargetConfig,
        session: requests.Session | None = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.config = config
        self.session = session or requests.Session()
        self.logger = logger or logging.getLogger(__name__)

    @property
    def account_key(self) -> str:
        return f"{self.config.base_url}|{self.config.user_id}"

    def _headers(self) -> dict[str, str]:
        return {
            "x-api-user": self.config.user_id,
            "x-api-key": self.config.api_token,
            "x-client": f"{self.config.user_id}-{self.config.client_name}",
            "Accept": "application/json",
        }

    def _request(self, method: str, path: str, payload: dict[str, Any] | None = None) -> requests.Response:
        url = f"{self.config.base_url}{path}"
        try:
            response = self.session.request(
                method,
                url,
                headers=self._headers(),
                json=payload,
                timeout=self.config.timeout_seconds,
            )
        except requests.RequestException as exc:
            raise TransportError(f"{method} {path} failed: {exc}") from exc
        if not response.ok:
            raise TransportError(
                f"{method} {path} returned HTTP {response.status_code}: {response.text[:300]}",
                status_code=response.status_code,
            )
        return response

    @staticmethod
    def _data(response: requests.Response, action: str) -> dict[str, Any]:
        try:
            body = response.json()
        except ValueError as exc:
            raise UnexpectedResponseError(f"{action}: response body is not JSON") from exc
        data = body.get("data") if isinstance(body, dict) else None
        if not isinstance(data, dict) or not data:
            raise UnexpectedResponseError(f"{action}: response has no task data")
        return data

    def create_task(self, task: TargetTask) -> TargetTask:
        response = self._request("POST", "/tasks/user", task.to_payload())
        return TargetTask.from_dict(self._data(response, "create task"))

    def update_task(self, task_id: str, task: TargetTask) -> TargetTask:
        response = self._request("PUT", f"/tasks/{task_id}", task.to_payload())
        return TargetTask.from_dict(self._data(response, f"update task {task_id}"))

    def update_task_score(self, task_id: str, direction: bool) -> dict[str, Any]:
        way = "up" if direction else "down"
        response = self._request("POST", f"/tasks/{task_id}/score/{way}")
        return self._data(response, f"score task {task_id} {way}")

    def delete_task(self, task_id: str) -> None:
        try:
            self._request("DELETE", f"/tasks/{task_id}")
        except TransportError as exc:
            if exc.status_code != 404:
                raise
            self.logger.warning("Habitica task %s was already deleted", task_id)
