"""
GPI Document Hub - Conversion Results

Uniform outcome reporting for folder and document conversion. A result is
tagged with the kind of subject it describes so callers can handle folder
and document outcomes with the same code.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Any, Iterable, List


class ConversionStatus(str, Enum):
    """Conversion outcome for a single folder or document."""
    PENDING = "pending"       # Not yet decided (never returned to callers)
    QUEUED = "queued"         # Conversion request persisted
    CONVERTED = "converted"   # File version created
    SKIPPED = "skipped"       # Already converted or queued
    ERROR = "error"


class SubjectKind(str, Enum):
    """What a conversion result describes."""
    FOLDER = "folder"
    DOCUMENT = "document"


@dataclass
class ConversionResult:
    """
    Outcome of converting one folder or one document.

    Messages behave like a set: adding the same text twice keeps a single
    copy, and the original insertion order is preserved for display.
    """
    kind: SubjectKind
    subject_id: str
    status: ConversionStatus = ConversionStatus.PENDING
    _messages: Dict[str, None] = field(default_factory=dict, repr=False, init=False)

    @classmethod
    def for_folder(cls, folder_id: str) -> 'ConversionResult':
        return cls(kind=SubjectKind.FOLDER, subject_id=folder_id)

    @classmethod
    def for_document(cls, document_id: str) -> 'ConversionResult':
        return cls(kind=SubjectKind.DOCUMENT, subject_id=document_id)

    @property
    def messages(self) -> List[str]:
        return list(self._messages)

    @property
    def is_terminal(self) -> bool:
        return self.status != ConversionStatus.PENDING

    def add_message(self, message: str) -> None:
        if message:
            self._messages[message] = None

    def add_messages(self, messages: Iterable[str]) -> None:
        for message in messages:
            self.add_message(message)

    def mark(self, status: ConversionStatus, message: str = None) -> 'ConversionResult':
        """Set the status and optionally record why."""
        self.status = status
        if message:
            self.add_message(message)
        return self

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        id_key = "folder_id" if self.kind == SubjectKind.FOLDER else "document_id"
        return {
            "kind": self.kind.value,
            id_key: self.subject_id,
            "status": self.status.value,
            "messages": self.messages,
        }
