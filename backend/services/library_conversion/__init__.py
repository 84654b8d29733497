"""
GPI Document Hub - Folder to Library Conversion

Converts legacy folders into libraries, keeping each folder's sharing as
library membership through a permission group, then migrates the folder's
documents into file versions.

Components:
- ConversionRequestRegistry: queues one conversion request per folder
- LibraryProvisioner: creates libraries, groups and access grants
- ConversionRequestUpdater: records provisioned ids on the requests
- DocumentMigrator: converts documents into file versions exactly once
- MembershipResolver: looks up folder sharing in the legacy system
- ConversionResult: per folder/document outcome
"""

from .errors import ConversionError, ResolverError, ProvisioningError, MigrationError
from .events import ConversionEventOutbox, ConversionRequestUpdater, LibraryProvisionedEvent
from .migrator import DocumentMigrator
from .models import (
    AccessLevel, DocumentType, Folder, LegacyDocument, ConversionRequest, FileVersion,
    derive_library_name, join_principal_ids, split_principal_ids
)
from .provisioner import LibraryProvisioner, ProvisioningSummary
from .registry import ConversionRequestRegistry
from .resolver import (
    MembershipResolver, FolderSharing, InMemoryMembershipResolver, HttpMembershipResolver
)
from .results import ConversionResult, ConversionStatus, SubjectKind
from .storage import ensure_conversion_indexes

__all__ = [
    'ConversionError',
    'ResolverError',
    'ProvisioningError',
    'MigrationError',
    'ConversionEventOutbox',
    'ConversionRequestUpdater',
    'LibraryProvisionedEvent',
    'DocumentMigrator',
    'AccessLevel',
    'DocumentType',
    'Folder',
    'LegacyDocument',
    'ConversionRequest',
    'FileVersion',
    'derive_library_name',
    'join_principal_ids',
    'split_principal_ids',
    'LibraryProvisioner',
    'ProvisioningSummary',
    'ConversionRequestRegistry',
    'MembershipResolver',
    'FolderSharing',
    'InMemoryMembershipResolver',
    'HttpMembershipResolver',
    'ConversionResult',
    'ConversionStatus',
    'SubjectKind',
    'ensure_conversion_indexes',
]
