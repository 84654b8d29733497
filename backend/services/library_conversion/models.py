"""
GPI Document Hub - Folder Conversion Models

Records that flow through folder conversion:

- Folder: legacy folder selected for conversion (input)
- LegacyDocument: legacy content item inside a folder (input)
- ConversionRequest: durable per-folder tracking record
- FileVersion: migrated document stored in a library

Library and permission group names are derived from the folder developer
name, so the same folder always maps to the same library.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Any, Iterable, List, Optional

from .config import LIBRARY_NAME_PREFIX, PRINCIPAL_SEPARATOR


class AccessLevel(str, Enum):
    """Public access level of a legacy folder."""
    READ_ONLY = "ReadOnly"
    READ_WRITE = "ReadWrite"


class DocumentType(str, Enum):
    """How a legacy document stores its content."""
    URL = "URL"
    BINARY = "BINARY"


def new_id() -> str:
    return str(uuid.uuid4())


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


# =============================================================================
# DERIVED NAMES
# =============================================================================

def derive_library_name(folder_developer_name: str, prefix: str = None) -> str:
    """
    Library and permission group developer name for a folder.

    Folder developer names are unique in the legacy store, so the derived
    name is unique per folder as long as the prefix is fixed.
    """
    if not folder_developer_name:
        raise ValueError("folder developer name is required")
    return f"{prefix or LIBRARY_NAME_PREFIX}_{folder_developer_name}"


def join_principal_ids(principal_ids: Iterable[str]) -> str:
    """Join principal ids for storage, dropping blanks and repeats."""
    seen: Dict[str, None] = {}
    for principal_id in principal_ids:
        if principal_id:
            seen[principal_id] = None
    return PRINCIPAL_SEPARATOR.join(seen)


def split_principal_ids(value: Optional[str]) -> List[str]:
    """Inverse of join_principal_ids."""
    if not value:
        return []
    return [p for p in value.split(PRINCIPAL_SEPARATOR) if p]


# =============================================================================
# SOURCE RECORDS
# =============================================================================

@dataclass
class Folder:
    """A legacy folder selected for conversion."""
    id: str
    developer_name: str
    name: str


@dataclass
class LegacyDocument:
    """
    A legacy document ready for migration.

    URL documents carry `url`; binary documents carry `body`. The audit
    fields are copied onto the migrated file version unchanged.
    """
    id: str
    folder_id: str
    doc_type: DocumentType
    title: str
    author_id: str
    body: Optional[bytes] = None
    url: Optional[str] = None
    description: Optional[str] = None
    keywords: Optional[str] = None
    file_extension: Optional[str] = None
    created_by_id: Optional[str] = None
    created_date: Optional[str] = None
    last_modified_by_id: Optional[str] = None
    last_modified_date: Optional[str] = None

    @property
    def is_url(self) -> bool:
        return self.doc_type == DocumentType.URL

    @property
    def path(self) -> str:
        """Client path recorded on the file version."""
        if self.is_url:
            return self.url or ""
        if self.file_extension:
            return f"{self.title}.{self.file_extension}"
        return self.title


# =============================================================================
# CONVERSION RECORDS
# =============================================================================

@dataclass
class ConversionRequest:
    """
    Durable conversion request, one per folder.

    Existence of a request means the folder is queued or further along.
    `library_id` and `group_id` are filled in after provisioning.
    """
    folder_id: str
    folder_name: str
    folder_developer_name: str
    principal_ids: str
    permission_tier_id: str
    library_id: Optional[str] = None
    group_id: Optional[str] = None
    id: str = field(default_factory=new_id)
    created_utc: str = field(default_factory=utc_now)
    provisioned_utc: Optional[str] = None

    @property
    def library_name(self) -> str:
        return derive_library_name(self.folder_developer_name)

    @property
    def principals(self) -> List[str]:
        return split_principal_ids(self.principal_ids)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the stored document shape."""
        return {
            "id": self.id,
            "folder_id": self.folder_id,
            "folder_name": self.folder_name,
            "folder_developer_name": self.folder_developer_name,
            "principal_ids": self.principal_ids,
            "permission_tier_id": self.permission_tier_id,
            "library_id": self.library_id,
            "group_id": self.group_id,
            "created_utc": self.created_utc,
            "provisioned_utc": self.provisioned_utc,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ConversionRequest':
        return cls(
            id=data["id"],
            folder_id=data["folder_id"],
            folder_name=data.get("folder_name", ""),
            folder_developer_name=data["folder_developer_name"],
            principal_ids=data.get("principal_ids") or "",
            permission_tier_id=data["permission_tier_id"],
            library_id=data.get("library_id"),
            group_id=data.get("group_id"),
            created_utc=data.get("created_utc") or utc_now(),
            provisioned_utc=data.get("provisioned_utc"),
        )


@dataclass
class FileVersion:
    """A migrated document stored in a library."""
    path: str
    title: str
    library_id: str
    owner_id: str
    created_by_id: str
    origin_document_id: str
    origin_folder_id: str
    version_data: Optional[bytes] = None
    content_url: Optional[str] = None
    description: Optional[str] = None
    tags: Optional[str] = None
    created_date: Optional[str] = None
    last_modified_by_id: Optional[str] = None
    last_modified_date: Optional[str] = None
    id: str = field(default_factory=new_id)
    migrated_utc: str = field(default_factory=utc_now)

    @classmethod
    def from_document(cls, document: LegacyDocument, library_id: str) -> 'FileVersion':
        """
        Build the file version for a legacy document.

        Owner and creator are both the original author so the migrated file
        does not end up owned by whoever runs the migration.
        """
        return cls(
            path=document.path,
            title=document.title,
            library_id=library_id,
            owner_id=document.author_id,
            created_by_id=document.author_id,
            origin_document_id=document.id,
            origin_folder_id=document.folder_id,
            version_data=None if document.is_url else document.body,
            content_url=document.url if document.is_url else None,
            description=document.description,
            tags=document.keywords,
            created_date=document.created_date,
            last_modified_by_id=document.last_modified_by_id,
            last_modified_date=document.last_modified_date,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the stored document shape."""
        return {
            "id": self.id,
            "path": self.path,
            "title": self.title,
            "description": self.description,
            "tags": self.tags,
            "version_data": self.version_data,
            "content_url": self.content_url,
            "library_id": self.library_id,
            "owner_id": self.owner_id,
            "created_by_id": self.created_by_id,
            "created_date": self.created_date,
            "last_modified_by_id": self.last_modified_by_id,
            "last_modified_date": self.last_modified_date,
            "origin_document_id": self.origin_document_id,
            "origin_folder_id": self.origin_folder_id,
            "migrated_utc": self.migrated_utc,
        }
