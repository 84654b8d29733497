"""
Tests for folder conversion models and results.
"""
import pytest

from services.library_conversion import (
    ConversionRequest, ConversionResult, ConversionStatus, DocumentType, FileVersion,
    LegacyDocument, SubjectKind, derive_library_name, join_principal_ids, split_principal_ids
)


def make_document(**overrides):
    fields = dict(
        id="DOC-001",
        folder_id="FLD-001",
        doc_type=DocumentType.BINARY,
        title="Quarterly Report",
        author_id="USR-AUTHOR",
        body=b"%PDF-1.4",
        description="Q3 numbers",
        keywords="finance,q3",
        file_extension="pdf",
        created_by_id="USR-CREATOR",
        created_date="2019-03-01T10:00:00+00:00",
        last_modified_by_id="USR-EDITOR",
        last_modified_date="2020-01-15T08:30:00+00:00",
    )
    fields.update(overrides)
    return LegacyDocument(**fields)


class TestDerivedNames:
    """Tests for library/group name derivation."""

    def test_prefix_and_folder_name(self):
        assert derive_library_name("Acme") == "LIB_Acme"

    def test_same_input_same_name(self):
        assert derive_library_name("Sales_Docs") == derive_library_name("Sales_Docs")

    def test_different_folders_different_names(self):
        assert derive_library_name("Acme") != derive_library_name("Acme2")

    def test_custom_prefix(self):
        assert derive_library_name("Acme", prefix="CONV") == "CONV_Acme"

    def test_empty_developer_name_rejected(self):
        with pytest.raises(ValueError):
            derive_library_name("")


class TestPrincipalIds:
    """Tests for joining and splitting sharing principals."""

    def test_join(self):
        assert join_principal_ids(["P1", "P2"]) == "P1,P2"

    def test_split_restores_joined_ids(self):
        ids = ["005A", "00GB", "00EC"]
        assert split_principal_ids(join_principal_ids(ids)) == ids

    def test_join_drops_blanks_and_repeats(self):
        assert join_principal_ids(["P1", "", "P2", "P1"]) == "P1,P2"

    def test_split_empty(self):
        assert split_principal_ids("") == []
        assert split_principal_ids(None) == []


class TestConversionResult:
    """Tests for ConversionResult."""

    def test_folder_result(self):
        result = ConversionResult.for_folder("FLD-001")
        assert result.kind == SubjectKind.FOLDER
        assert result.status == ConversionStatus.PENDING
        assert not result.is_terminal

    def test_messages_collapse_duplicates(self):
        result = ConversionResult.for_document("DOC-001")
        result.add_message("first")
        result.add_message("second")
        result.add_message("first")
        assert result.messages == ["first", "second"]

    def test_mark_sets_status_and_message(self):
        result = ConversionResult.for_folder("FLD-001").mark(ConversionStatus.ERROR, "boom")
        assert result.status == ConversionStatus.ERROR
        assert result.messages == ["boom"]
        assert result.is_terminal

    def test_to_dict_uses_subject_key(self):
        folder = ConversionResult.for_folder("FLD-001").mark(ConversionStatus.QUEUED)
        document = ConversionResult.for_document("DOC-001").mark(ConversionStatus.SKIPPED)

        assert folder.to_dict() == {
            "kind": "folder", "folder_id": "FLD-001", "status": "queued", "messages": []
        }
        assert document.to_dict()["document_id"] == "DOC-001"
        assert document.to_dict()["status"] == "skipped"


class TestConversionRequest:
    """Tests for ConversionRequest."""

    def test_dict_round_trip(self):
        request = ConversionRequest(
            folder_id="FLD-001",
            folder_name="Acme",
            folder_developer_name="Acme",
            principal_ids="P1,P2",
            permission_tier_id="TIER-RW",
        )
        restored = ConversionRequest.from_dict(request.to_dict())
        assert restored == request

    def test_library_name_and_principals(self):
        request = ConversionRequest(
            folder_id="FLD-001",
            folder_name="Acme",
            folder_developer_name="Acme",
            principal_ids="P1,P2",
            permission_tier_id="TIER-RW",
        )
        assert request.library_name == "LIB_Acme"
        assert request.principals == ["P1", "P2"]


class TestFileVersionFromDocument:
    """Tests for building file versions from legacy documents."""

    def test_binary_document(self):
        version = FileVersion.from_document(make_document(), "LIB-1")

        assert version.version_data == b"%PDF-1.4"
        assert version.content_url is None
        assert version.path == "Quarterly Report.pdf"
        assert version.library_id == "LIB-1"
        assert version.tags == "finance,q3"
        assert version.description == "Q3 numbers"

    def test_url_document(self):
        doc = make_document(
            doc_type=DocumentType.URL, body=None, url="https://example.com/handbook", file_extension=None
        )
        version = FileVersion.from_document(doc, "LIB-1")

        assert version.content_url == "https://example.com/handbook"
        assert version.version_data is None
        assert version.path == "https://example.com/handbook"

    def test_owner_and_creator_are_author(self):
        version = FileVersion.from_document(make_document(), "LIB-1")
        assert version.owner_id == "USR-AUTHOR"
        assert version.created_by_id == "USR-AUTHOR"

    def test_audit_fields_copied(self):
        version = FileVersion.from_document(make_document(), "LIB-1")
        assert version.created_date == "2019-03-01T10:00:00+00:00"
        assert version.last_modified_by_id == "USR-EDITOR"
        assert version.last_modified_date == "2020-01-15T08:30:00+00:00"

    def test_origin_references(self):
        version = FileVersion.from_document(make_document(), "LIB-1")
        d = version.to_dict()
        assert d["origin_document_id"] == "DOC-001"
        assert d["origin_folder_id"] == "FLD-001"
