"""asset_group_sync.remote_client

Minimal Qualys clients covering only what reconciliation needs: look a group
up by name, create it (tag back-end only), and edit its IP membership.

Two back-ends with incompatible wire formats:
  GroupApiClient: fo/asset/group (v2 API): query-string lookup returning
                   <ID>n</ID>; form-encoded edit with add_ips / remove_ips.
  TagApiClient:   qps/rest/2.0 am/tag: JSON request bodies, XML responses
                   containing <id>n</id>; supports create-with-membership.

Every call is one blocking round trip through requests.request (no session,
no retry). Transport failures are logged with the request context and
reported through a sentinel; they never raise. The only exception raised is
ValueError for an invalid action, before any I/O.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Iterable, Protocol

import requests

from asset_group_sync.qualys_errors import extract_code

log = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://qualysapi.qualys.com"
DEFAULT_TIMEOUT = 30

ACTION_ADD = "add"
ACTION_REMOVE = "remove"
VALID_ACTIONS = (ACTION_ADD, ACTION_REMOVE)

BACKEND_GROUP = "group"
BACKEND_TAG = "tag"

_REDACTED_AUTH = "Authorization=Basic ****"
_BODY_LOG_LIMIT = 2000

_GROUP_ID_RE = re.compile(r"<ID>\s*(.*?)\s*</ID>", re.DOTALL)
_TAG_ID_RE = re.compile(r"<id>\s*(\d+)\s*</id>")


def validate_action(action: str) -> None:
    if action not in VALID_ACTIONS:
        raise ValueError(f"action must be 'add' or 'remove', got {action!r}")


@dataclass(frozen=True)
class LookupResult:
    """Outcome of a lookup or create call.

    group_id set        → found / created
    transport_error     → no usable answer from the service
    otherwise           → answered, but no id in the body (not found)
    """

    group_id: str | None = None
    body: str | None = None
    transport_error: bool = False

    @property
    def found(self) -> bool:
        return self.group_id is not None


class AssetGroupBackend(Protocol):
    """What the reconciler needs from a back-end."""

    backend: str
    creates_missing: bool

    def lookup_by_name(self, name: str) -> LookupResult:
        ...

    def create(self, name: str, ips: Iterable[str]) -> LookupResult:
        ...

    def edit_membership(self, group_id: str, action: str, ips: Iterable[str]) -> str | None:
        """Return the response body, or None on transport failure."""
        ...


class RemoteGroupClient:
    """Shared transport for both back-ends; subclasses define the wire format."""

    backend = ""
    creates_missing = False

    def __init__(
        self,
        username: str,
        password: str,
        base_url: str = DEFAULT_BASE_URL,
        timeout: int = DEFAULT_TIMEOUT,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._auth = (username, password)

    def _send(
        self,
        method: str,
        url: str,
        context: str,
        headers: dict[str, str] | None = None,
        **kwargs: Any,
    ) -> str | None:
        """Perform one request; return the body text, or None on transport failure.

        An HTTP error status still counts as an answer when its body carries a
        Qualys error code, so the caller can classify it.
        """
        all_headers = {"X-Requested-With": "asset-group-sync"}
        all_headers.update(headers or {})
        try:
            resp = requests.request(
                method,
                url,
                auth=self._auth,
                headers=all_headers,
                timeout=self.timeout,
                **kwargs,
            )
            resp.raise_for_status()
        except requests.HTTPError as exc:
            resp = exc.response
            body = resp.text if resp is not None else ""
            if extract_code(body) is not None:
                log.warning(
                    "%s %s returned HTTP %s with an error code",
                    method, url, resp.status_code,
                )
                return body
            self._log_failure(method, url, context, all_headers, kwargs, exc)
            return None
        except requests.RequestException as exc:
            self._log_failure(method, url, context, all_headers, kwargs, exc)
            return None
        log.debug("%s %s → HTTP %s", method, url, resp.status_code)
        return resp.text

    def _log_failure(
        self,
        method: str,
        url: str,
        context: str,
        headers: dict[str, str],
        kwargs: dict[str, Any],
        exc: requests.RequestException,
    ) -> None:
        log.error("Transport failure during %s: %s", context, exc)
        log.error("Request: %s %s", method, url)
        for key in ("params", "data", "json"):
            if kwargs.get(key) is not None:
                log.error("Request %s: %s", key, kwargs[key])
        other = ", ".join(f"{k}={v}" for k, v in headers.items())
        log.error("Request Headers: %s, %s", _REDACTED_AUTH, other)
        resp = getattr(exc, "response", None)
        if resp is not None:
            log.error("HTTP Response Code: %s", resp.status_code)
            log.error("HTTP Response Body:\n%s", (resp.text or "")[:_BODY_LOG_LIMIT])


# ---------------------------------------------------------------------------
# Group-oriented back-end (fo/asset/group)
# ---------------------------------------------------------------------------

class GroupApiClient(RemoteGroupClient):
    backend = BACKEND_GROUP

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/api/2.0/fo/asset/group/"

    def lookup_by_name(self, name: str) -> LookupResult:
        body = self._send(
            "GET",
            self.endpoint,
            context=f"group lookup for {name!r}",
            params={"action": "list", "title": name},
        )
        if body is None:
            return LookupResult(transport_error=True)
        m = _GROUP_ID_RE.search(body)
        return LookupResult(group_id=m.group(1) if m and m.group(1) else None, body=body)

    def create(self, name: str, ips: Iterable[str]) -> LookupResult:
        raise NotImplementedError("fo/asset/group back-end cannot create groups")

    def edit_membership(self, group_id: str, action: str, ips: Iterable[str]) -> str | None:
        validate_action(action)
        data = {
            "action": "edit",
            "id": group_id,
            f"{action}_ips": ",".join(sorted(ips)),
        }
        return self._send(
            "POST",
            self.endpoint,
            context=f"group edit ({action}) for id {group_id}",
            data=data,
        )


# ---------------------------------------------------------------------------
# Tag-oriented back-end (qps/rest/2.0 am/tag)
# ---------------------------------------------------------------------------

def _ip_list(ips: Iterable[str]) -> dict[str, Any]:
    return {"IpAddress": [{"value": ip} for ip in sorted(ips)]}


class TagApiClient(RemoteGroupClient):
    backend = BACKEND_TAG
    creates_missing = True

    _HEADERS = {"Content-Type": "application/json", "Accept": "application/xml"}

    def _url(self, operation: str, suffix: str = "") -> str:
        return f"{self.base_url}/qps/rest/2.0/{operation}/am/tag{suffix}"

    def lookup_by_name(self, name: str) -> LookupResult:
        payload = {
            "ServiceRequest": {
                "filters": {
                    "Criteria": [
                        {"field": "name", "operator": "EQUALS", "value": name},
                    ]
                }
            }
        }
        body = self._send(
            "POST",
            self._url("search"),
            context=f"tag lookup for {name!r}",
            headers=self._HEADERS,
            json=payload,
        )
        if body is None:
            return LookupResult(transport_error=True)
        m = _TAG_ID_RE.search(body)
        return LookupResult(group_id=m.group(1) if m else None, body=body)

    def create(self, name: str, ips: Iterable[str]) -> LookupResult:
        tag: dict[str, Any] = {"name": name}
        ips = list(ips)
        if ips:
            tag["ipList"] = {ACTION_ADD: _ip_list(ips)}
        body = self._send(
            "POST",
            self._url("create"),
            context=f"tag create for {name!r}",
            headers=self._HEADERS,
            json={"ServiceRequest": {"data": {"Tag": tag}}},
        )
        if body is None:
            return LookupResult(transport_error=True)
        m = _TAG_ID_RE.search(body)
        return LookupResult(group_id=m.group(1) if m else None, body=body)

    def edit_membership(self, group_id: str, action: str, ips: Iterable[str]) -> str | None:
        validate_action(action)
        payload = {
            "ServiceRequest": {
                "data": {"Tag": {"ipList": {action: _ip_list(ips)}}}
            }
        }
        return self._send(
            "POST",
            self._url("update", f"/{group_id}"),
            context=f"tag edit ({action}) for id {group_id}",
            headers=self._HEADERS,
            json=payload,
        )


def build_client(
    backend: str,
    username: str,
    password: str,
    base_url: str = DEFAULT_BASE_URL,
    timeout: int = DEFAULT_TIMEOUT,
) -> AssetGroupBackend:
    if backend == BACKEND_GROUP:
        return GroupApiClient(username, password, base_url=base_url, timeout=timeout)
    if backend == BACKEND_TAG:
        return TagApiClient(username, password, base_url=base_url, timeout=timeout)
    raise ValueError(f"unknown backend {backend!r}")
