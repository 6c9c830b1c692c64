"""Tests for Sid and ObjectIdentity."""

from __future__ import annotations

from types import SimpleNamespace

import pytest

from object_acl.core.acl.identity import ObjectIdentity
from object_acl.core.acl.sid import Sid, SidKind, sids_for


@pytest.mark.unit
class TestSid:
    """Tests for the Sid closed variant."""

    def test_equality_is_structural(self) -> None:
        assert Sid.principal("alice") == Sid(SidKind.PRINCIPAL, "alice")
        assert Sid.principal("alice") != Sid.authority("alice")
        assert len({Sid.principal("alice"), Sid.principal("alice")}) == 1

    def test_from_row(self) -> None:
        assert Sid.from_row(True, "alice") == Sid.principal("alice")
        assert Sid.from_row(False, "ROLE_ADMIN") == Sid.authority("ROLE_ADMIN")

    def test_str(self) -> None:
        assert str(Sid.principal("alice")) == "Principal(alice)"
        assert str(Sid.authority("ROLE_ADMIN")) == "Authority(ROLE_ADMIN)"

    def test_rejects_empty_name(self) -> None:
        with pytest.raises(ValueError):
            Sid.principal("")

    def test_sids_for_orders_principal_first_and_deduplicates(self) -> None:
        sids = sids_for("alice", ["ROLE_USER", "ROLE_EDITOR", "ROLE_USER"])

        assert sids == (
            Sid.principal("alice"),
            Sid.authority("ROLE_USER"),
            Sid.authority("ROLE_EDITOR"),
        )

    def test_sids_for_anonymous(self) -> None:
        assert sids_for(None, ["ROLE_ANONYMOUS"]) == (Sid.authority("ROLE_ANONYMOUS"),)


@pytest.mark.unit
class TestObjectIdentity:
    """Tests for ObjectIdentity keys."""

    def test_value_semantics(self) -> None:
        assert ObjectIdentity("Document", 1) == ObjectIdentity("Document", 1)
        assert ObjectIdentity("Document", 1) != ObjectIdentity("Folder", 1)
        assert {ObjectIdentity("Document", 1): "x"}[ObjectIdentity("Document", 1)] == "x"

    def test_immutable(self) -> None:
        oi = ObjectIdentity("Document", 1)

        with pytest.raises(AttributeError):
            oi.identifier = 2  # type: ignore[misc]

    def test_cache_key_and_str(self) -> None:
        oi = ObjectIdentity("Document", 42)

        assert oi.cache_key == "Document:42"
        assert str(oi) == "Document#42"

    @pytest.mark.parametrize("identifier", [2**63, -(2**63) - 1])
    def test_identifier_must_fit_int64(self, identifier: int) -> None:
        with pytest.raises(ValueError):
            ObjectIdentity("Document", identifier)

    @pytest.mark.parametrize("identifier", ["1", 1.0, True])
    def test_identifier_must_be_int(self, identifier: object) -> None:
        with pytest.raises(TypeError):
            ObjectIdentity("Document", identifier)  # type: ignore[arg-type]

    def test_type_name_required(self) -> None:
        with pytest.raises(ValueError):
            ObjectIdentity("", 1)

    def test_for_object_uses_class_name_and_id(self) -> None:
        class Document:
            def __init__(self, id: int) -> None:
                self.id = id

        assert ObjectIdentity.for_object(Document(7)) == ObjectIdentity("Document", 7)
        assert ObjectIdentity.for_object(Document(7), "Doc") == ObjectIdentity("Doc", 7)

    def test_for_object_requires_id(self) -> None:
        with pytest.raises(ValueError, match="no id"):
            ObjectIdentity.for_object(SimpleNamespace(id=None))
