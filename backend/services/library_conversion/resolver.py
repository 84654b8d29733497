"""
GPI Document Hub - Folder Sharing Resolvers

A MembershipResolver reports, for each requested folder, its public access
level and every principal (user, group or role-derived group) that should
keep access after conversion.

The conversion core treats the resolver as opaque. Implementations:
- InMemoryMembershipResolver: fixture-backed, for tests and dry runs
- HttpMembershipResolver: calls the legacy system's sharing endpoint
"""

import logging
import httpx
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, Any, Iterable, List, Optional

from .config import LEGACY_API_BASE, RESOLVER_TIMEOUT_SECONDS
from .errors import ResolverError

logger = logging.getLogger(__name__)


@dataclass
class FolderSharing:
    """Sharing state of one legacy folder."""
    folder_id: str
    name: str
    developer_name: str
    access_level: Optional[str] = None  # "ReadOnly" or "ReadWrite"
    principal_ids: List[str] = field(default_factory=list)
    error: Optional[str] = None         # Set when this folder alone failed

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'FolderSharing':
        """Build from the legacy API's JSON shape."""
        return cls(
            folder_id=data.get("id", ""),
            name=data.get("name", ""),
            developer_name=data.get("developerName", ""),
            access_level=data.get("accessType"),
            principal_ids=list(data.get("principalIds") or []),
            error=data.get("error"),
        )


class MembershipResolver(ABC):
    """Looks up folder sharing in the legacy system."""

    @abstractmethod
    async def resolve(
        self,
        developer_names: Iterable[str],
        credential: Optional[str] = None
    ) -> Dict[str, FolderSharing]:
        """
        Resolve sharing for a batch of folders.

        Args:
            developer_names: Folder developer names to look up
            credential: Opaque credential passed through to the legacy system

        Returns:
            FolderSharing keyed by folder developer name

        Raises:
            ResolverError: if the lookup failed for the whole batch
        """
        pass


class InMemoryMembershipResolver(MembershipResolver):
    """
    In-memory resolver for testing.

    Folders can be added programmatically.
    """

    def __init__(self):
        self._folders: Dict[str, FolderSharing] = {}
        self.calls: List[List[str]] = []

    def add_folder(self, sharing: FolderSharing) -> None:
        """Add a folder's sharing state."""
        self._folders[sharing.developer_name] = sharing

    async def resolve(
        self,
        developer_names: Iterable[str],
        credential: Optional[str] = None
    ) -> Dict[str, FolderSharing]:
        names = list(developer_names)
        self.calls.append(names)
        return {name: self._folders[name] for name in names if name in self._folders}


class HttpMembershipResolver(MembershipResolver):
    """
    Resolver backed by the legacy system's sharing endpoint.

    Request:  POST {base_url}/folders/sharing {"developerNames": [...]}
    Response: {"folders": [{"id", "name", "developerName", "accessType",
               "principalIds", "error"?}, ...]}
    """

    def __init__(
        self,
        base_url: str = LEGACY_API_BASE,
        timeout: float = RESOLVER_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    async def resolve(
        self,
        developer_names: Iterable[str],
        credential: Optional[str] = None
    ) -> Dict[str, FolderSharing]:
        names = list(developer_names)
        if not names:
            return {}

        headers = {}
        if credential:
            headers["Authorization"] = f"Bearer {credential}"

        logger.info("Resolving sharing for %d folders", len(names))

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.post(
                    f"{self.base_url}/folders/sharing",
                    json={"developerNames": names},
                    headers=headers
                )
        except httpx.HTTPError as e:
            raise ResolverError(f"Sharing lookup failed: {e}") from e

        if resp.status_code != 200:
            raise ResolverError(
                f"Sharing lookup failed: {resp.status_code} - {resp.text[:500]}"
            )

        try:
            payload = resp.json()
        except ValueError as e:
            raise ResolverError(f"Sharing lookup returned invalid JSON: {e}") from e

        resolved = {}
        for raw in payload.get("folders", []):
            sharing = FolderSharing.from_dict(raw)
            if sharing.developer_name in names:
                resolved[sharing.developer_name] = sharing
        return resolved
