"""
operations.py  –  Long-running operation poller

A 202 Accepted answer carries the operation id in ``x-ms-operation-id`` or in
the ``Location`` header (…/operations/{id}).  The status endpoint is polled
until the operation reports Succeeded or Failed, or the attempt budget runs
out.  Delays come from an injected ``sleep`` so tests do not wait.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Mapping, Optional

import requests

from .config import FABRIC_BASE, POLL_INTERVAL, POLL_MAX, POLL_MAX_RETRY_WAIT, POLL_TIMEOUT
from .errors import OperationFailedError, OperationTimeoutError, RemoteCallError
from .models import Operation, OperationStatus

logger = logging.getLogger(__name__)

DEFAULT_FAILURE_MESSAGE = "Operation failed."

_OPERATIONS_MARKER = "/operations/"


def extract_operation_id(headers: Mapping[str, str]) -> Optional[str]:
    """Operation id from the dedicated header, else from the Location path."""
    operation_id = (headers.get("x-ms-operation-id") or "").strip()
    if operation_id:
        return operation_id

    location = (headers.get("Location") or "").strip()
    if not location:
        return None
    marker_at = location.lower().find(_OPERATIONS_MARKER)
    if marker_at < 0:
        return None
    tail = location[marker_at + len(_OPERATIONS_MARKER):]
    operation_id = tail.split("/", 1)[0].split("?", 1)[0]
    return operation_id or None


def _failure_message(error) -> str:
    if isinstance(error, dict):
        return error.get("message") or DEFAULT_FAILURE_MESSAGE
    if isinstance(error, str) and error.strip():
        return error.strip()
    return DEFAULT_FAILURE_MESSAGE


def retry_delay(headers: Mapping[str, str],
                default: float = POLL_INTERVAL,
                cap: float = POLL_MAX_RETRY_WAIT) -> float:
    """Seconds to wait before the next poll, honouring a positive Retry-After."""
    raw = (headers.get("Retry-After") or "").strip()
    try:
        parsed = int(raw)
    except ValueError:
        return default
    if parsed <= 0:
        return default
    return min(parsed, cap)


class OperationPoller:

    def __init__(self, session: requests.Session,
                 base_url: str = FABRIC_BASE,
                 max_attempts: int = POLL_MAX,
                 sleep: Callable[[float], None] = time.sleep):
        self.session = session
        self.base_url = base_url.rstrip("/")
        self.max_attempts = max_attempts
        self.sleep = sleep

    def wait(self, accepted: requests.Response) -> Operation:
        """Block until the operation behind *accepted* finishes.

        Returns the succeeded Operation.  Raises OperationFailedError on a
        Failed status and OperationTimeoutError when the budget is exhausted.
        """
        operation_id = extract_operation_id(accepted.headers)
        if not operation_id:
            raise OperationFailedError("Operation accepted but operation id was not returned by API.")
        return self.poll(operation_id)

    def poll(self, operation_id: str) -> Operation:
        operation = Operation(operation_id)
        status_url = f"{self.base_url}/operations/{operation_id}"

        for attempt in range(1, self.max_attempts + 1):
            resp = self.session.get(status_url, timeout=POLL_TIMEOUT)
            if not resp.ok:
                raise RemoteCallError(resp.status_code, resp.text[:500], "Operation status query")

            body = resp.json() if resp.content else {}
            operation.attempts = attempt
            operation.status = OperationStatus.from_api(body.get("status"))
            logger.info("Polling %s: %s (attempt %d/%d)",
                        operation_id, body.get("status", ""), attempt, self.max_attempts)

            if operation.status is OperationStatus.SUCCEEDED:
                return operation

            if operation.status is OperationStatus.FAILED:
                operation.error_message = _failure_message(body.get("error"))
                raise OperationFailedError(operation.error_message)

            if attempt < self.max_attempts:
                self.sleep(retry_delay(resp.headers))

        raise OperationTimeoutError(
            f"Timed out waiting for operation {operation_id} after {self.max_attempts} polls."
        )

    def result(self, operation_id: str) -> dict:
        """GET …/operations/{id}/result; empty dict when the operation has no body."""
        resp = self.session.get(f"{self.base_url}/operations/{operation_id}/result", timeout=60)
        if resp.status_code == 200 and resp.content:
            return resp.json()
        if not resp.ok and resp.status_code != 404:
            raise RemoteCallError(resp.status_code, resp.text[:500], "Operation result query")
        return {}
