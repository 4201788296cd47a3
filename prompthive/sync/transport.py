"""
Transports to the remote prompt registry.

The wire contract is two calls, both safe to retry:

- ``push(artifact, entries, blobs)`` -> accepted | rejected(reason)
- ``pull(artifact, since)`` -> entries, blobs and the remote head

Entries in a push are in topological order; the last one becomes the
remote head.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence
from urllib.parse import quote

import requests
from loguru import logger

from ..version_control.errors import NetworkError, RemoteRejectedError
from ..version_control.graph import ancestors, is_ancestor, missing_entries
from ..version_control.models import VersionEntry, compute_digest, normalize_content

log = logger.bind(component="sync")


@dataclass
class PushResponse:
    """Registry answer to a push."""

    accepted: bool
    reason: str = ""
    head: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        if self.accepted:
            return {"status": "accepted", "head": self.head}
        return {"status": "rejected", "reason": self.reason}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PushResponse":
        return cls(
            accepted=data.get("status") == "accepted",
            reason=data.get("reason", ""),
            head=data.get("head"),
        )


@dataclass
class PullResponse:
    """Entries (oldest first) and blobs the caller asked for, plus the remote head."""

    entries: List[VersionEntry] = field(default_factory=list)
    blobs: Dict[str, bytes] = field(default_factory=dict)
    head: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "head": self.head,
            "entries": [e.to_dict() for e in self.entries],
            "blobs": {d: b.decode("utf-8") for d, b in self.blobs.items()},
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PullResponse":
        return cls(
            entries=[VersionEntry.from_dict(e) for e in data.get("entries", [])],
            blobs={d: text.encode("utf-8") for d, text in data.get("blobs", {}).items()},
            head=data.get("head"),
        )


class RegistryTransport(ABC):
    """Abstract connection to a prompt registry."""

    @abstractmethod
    def push(
        self,
        artifact: str,
        entries: Sequence[VersionEntry],
        blobs: Mapping[str, bytes],
    ) -> PushResponse:
        """
        Send entries (topologically ordered) and the blobs the remote lacks.

        Raises:
            NetworkError: On transient failure
            RemoteRejectedError: If the registry refuses the credentials
        """
        pass

    @abstractmethod
    def pull(self, artifact: str, since: Optional[str] = None) -> PullResponse:
        """
        Fetch remote entries not reachable from ``since``.

        Raises:
            NetworkError: On transient failure
            RemoteRejectedError: If the registry refuses the credentials
        """
        pass


class HttpRegistryTransport(RegistryTransport):
    """
    Registry client over HTTP.

    Endpoints:
        POST {url}/api/sync/{artifact}/push
        GET  {url}/api/sync/{artifact}/pull?since=<entry id>
    """

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize the client.

        Args:
            base_url: Registry base URL
            api_key: Key sent as ``X-API-Key``
            timeout: Per-request timeout in seconds
            session: Optional pre-configured session
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({"Content-Type": "application/json"})
        if api_key:
            self.session.headers.update({"X-API-Key": api_key})

    def _url(self, artifact: str, action: str) -> str:
        return f"{self.base_url}/api/sync/{quote(artifact, safe='')}/{action}"

    def _request(self, method: str, url: str, **kwargs: Any) -> Dict[str, Any]:
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except (requests.ConnectionError, requests.Timeout) as e:
            raise NetworkError(f"Registry unreachable: {e}") from e

        if response.status_code in (401, 403):
            raise RemoteRejectedError(
                f"authentication failed (HTTP {response.status_code}); check PROMPTHIVE_API_KEY"
            )
        if response.status_code == 429 or response.status_code >= 500:
            raise NetworkError(f"Registry error: HTTP {response.status_code}")
        if response.status_code >= 400:
            raise RemoteRejectedError(f"HTTP {response.status_code}: {response.text[:200]}")

        try:
            return response.json()
        except ValueError as e:
            raise NetworkError(f"Malformed registry response: {e}") from e

    def push(
        self,
        artifact: str,
        entries: Sequence[VersionEntry],
        blobs: Mapping[str, bytes],
    ) -> PushResponse:
        payload = {
            "entries": [e.to_dict() for e in entries],
            "blobs": {d: b.decode("utf-8") for d, b in blobs.items()},
        }
        log.debug(f"POST push '{artifact}': {len(entries)} entries, {len(blobs)} blobs")
        data = self._request("POST", self._url(artifact, "push"), json=payload)
        return PushResponse.from_dict(data)

    def pull(self, artifact: str, since: Optional[str] = None) -> PullResponse:
        params = {"since": since} if since else {}
        log.debug(f"GET pull '{artifact}' since {since[:8] if since else 'root'}")
        data = self._request("GET", self._url(artifact, "pull"), params=params)
        return PullResponse.from_dict(data)


@dataclass
class _RemoteArtifact:
    entries: Dict[str, VersionEntry] = field(default_factory=dict)
    blobs: Dict[str, bytes] = field(default_factory=dict)
    head: Optional[str] = None


class InMemoryRegistry(RegistryTransport):
    """
    Registry held in memory.

    Implements the registry side of the wire contract: pushes are idempotent
    by id and digest, verified, and accepted only as fast-forwards.
    """

    def __init__(self):
        self._artifacts: Dict[str, _RemoteArtifact] = {}
        self.pushes: List[List[str]] = []

    def head(self, artifact: str) -> Optional[str]:
        remote = self._artifacts.get(artifact)
        return remote.head if remote else None

    def entries(self, artifact: str) -> Dict[str, VersionEntry]:
        remote = self._artifacts.get(artifact)
        return dict(remote.entries) if remote else {}

    def push(
        self,
        artifact: str,
        entries: Sequence[VersionEntry],
        blobs: Mapping[str, bytes],
    ) -> PushResponse:
        self.pushes.append([e.id for e in entries])
        remote = self._artifacts.get(artifact, _RemoteArtifact())
        staged_entries = dict(remote.entries)
        staged_blobs: Dict[str, bytes] = {}

        for digest, data in blobs.items():
            data = normalize_content(data)
            if compute_digest(data) != digest:
                return PushResponse(False, f"blob {digest[:12]} failed verification")
            staged_blobs[digest] = data

        for entry in entries:
            if entry.id in staged_entries:
                continue
            if entry.expected_id() != entry.id:
                return PushResponse(False, f"entry {entry.short_id} failed verification")
            missing = [p for p in entry.parent_ids if p not in staged_entries]
            if missing:
                return PushResponse(False, f"entry {entry.short_id} has unknown parent {missing[0][:8]}")
            if entry.content_digest not in staged_blobs and entry.content_digest not in remote.blobs:
                return PushResponse(False, f"blob {entry.content_digest[:12]} missing")
            staged_entries[entry.id] = entry

        new_head = entries[-1].id if entries else remote.head
        if not is_ancestor(staged_entries, remote.head, new_head):
            return PushResponse(False, "non-fast-forward push")

        remote.entries = staged_entries
        remote.blobs.update(staged_blobs)
        remote.head = new_head
        self._artifacts[artifact] = remote
        return PushResponse(True, head=remote.head)

    def pull(self, artifact: str, since: Optional[str] = None) -> PullResponse:
        remote = self._artifacts.get(artifact)
        if remote is None:
            return PullResponse()
        known = ancestors(remote.entries, since) if since in remote.entries else set()
        batch = missing_entries(remote.entries, remote.head, known)
        blobs = {e.content_digest: remote.blobs[e.content_digest] for e in batch}
        return PullResponse(entries=batch, blobs=blobs, head=remote.head)
