"""Tests for Permission bitmasks and PermissionFactory."""

from __future__ import annotations

import pytest

from object_acl.core.acl.permission import (
    MAX_MASK,
    RESERVED_MASK,
    BasePermission,
    Permission,
    PermissionFactory,
)
from object_acl.core.exceptions import PermissionRegistrationError


@pytest.mark.unit
class TestPermission:
    """Tests for the Permission value type."""

    def test_base_permissions_occupy_distinct_bits(self) -> None:
        masks = [p.mask for p in BasePermission.all()]

        assert masks == [1, 2, 4, 8, 16]
        assert RESERVED_MASK == 0b11111

    def test_composition_and_intersection(self) -> None:
        rw = BasePermission.READ | BasePermission.WRITE

        assert rw.mask == 3
        assert rw.intersects(BasePermission.WRITE)
        assert not rw.intersects(BasePermission.DELETE)
        assert (rw & BasePermission.READ) == BasePermission.READ
        assert BasePermission.READ in rw
        assert (BasePermission.READ | BasePermission.DELETE) not in rw

    def test_equality_ignores_code(self) -> None:
        assert Permission(1, "X") == BasePermission.READ
        assert hash(Permission(1)) == hash(BasePermission.READ)

    def test_atomic_splits_lowest_bit_first(self) -> None:
        composite = BasePermission.ADMINISTER | BasePermission.READ | BasePermission.CREATE

        assert list(composite.atomic()) == [
            BasePermission.READ,
            BasePermission.CREATE,
            BasePermission.ADMINISTER,
        ]
        assert BasePermission.WRITE.is_atomic
        assert not composite.is_atomic

    def test_empty_permission_is_falsy(self) -> None:
        assert not Permission(0)
        assert list(Permission(0).atomic()) == []

    def test_pattern(self) -> None:
        assert BasePermission.READ.pattern == "." * 31 + "R"
        assert (BasePermission.READ | BasePermission.WRITE).pattern.endswith("**")
        assert len(Permission(MAX_MASK).pattern) == 32

    @pytest.mark.parametrize("mask", [-1, MAX_MASK + 1])
    def test_rejects_out_of_range_masks(self, mask: int) -> None:
        with pytest.raises(PermissionRegistrationError):
            Permission(mask)

    def test_rejects_non_int_masks(self) -> None:
        with pytest.raises(PermissionRegistrationError):
            Permission(True)  # type: ignore[arg-type]

    def test_registration_error_is_value_error(self) -> None:
        with pytest.raises(ValueError):
            Permission(-5)


@pytest.mark.unit
class TestPermissionFactory:
    """Tests for named permission resolution and registration."""

    def test_base_names_are_preregistered(self) -> None:
        factory = PermissionFactory()

        assert factory.build_from_name("read") == BasePermission.READ
        assert factory.build_from_name(" Write ") == BasePermission.WRITE

    @pytest.mark.parametrize("alias", ["ADMINISTRATION", "admin", "administer"])
    def test_administer_aliases(self, alias: str) -> None:
        assert PermissionFactory().build_from_name(alias) == BasePermission.ADMINISTER

    def test_unknown_name_raises(self) -> None:
        with pytest.raises(PermissionRegistrationError) as exc:
            PermissionFactory().build_from_name("approve")

        assert exc.value.details["name"] == "approve"

    def test_register_custom_permission(self) -> None:
        factory = PermissionFactory()

        approve = factory.register("APPROVE", 1 << 5, code="P")

        assert factory.build_from_name("approve") == approve
        assert factory.build_from_mask(32) is approve
        assert factory.name_of(approve) == "APPROVE"
        assert approve.pattern.endswith("P" + "." * 5)

    def test_factories_are_independent(self) -> None:
        first = PermissionFactory()
        first.register("APPROVE", 1 << 5)

        with pytest.raises(PermissionRegistrationError):
            PermissionFactory().build_from_name("APPROVE")

    @pytest.mark.parametrize(
        ("name", "mask"),
        [
            ("RESERVED", 1 << 2),
            ("MULTI", (1 << 5) | (1 << 6)),
            ("EMPTY", 0),
        ],
    )
    def test_register_rejects_invalid_masks(self, name: str, mask: int) -> None:
        with pytest.raises(PermissionRegistrationError):
            PermissionFactory().register(name, mask)

    def test_register_rejects_claimed_bit_and_duplicate_name(self) -> None:
        factory = PermissionFactory()
        factory.register("APPROVE", 1 << 5)

        with pytest.raises(PermissionRegistrationError, match="Mask already registered"):
            factory.register("PUBLISH", 1 << 5)
        with pytest.raises(PermissionRegistrationError, match="name already registered"):
            factory.register("approve", 1 << 6)
        with pytest.raises(PermissionRegistrationError):
            factory.register("ADMINISTRATION", 1 << 7)

    def test_build_from_names_composes(self) -> None:
        factory = PermissionFactory()

        assert factory.build_from_names(["read", "delete"]).mask == 9

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            (BasePermission.CREATE, 4),
            ("read", 1),
            ("read, write", 3),
            (24, 24),
        ],
    )
    def test_resolve(self, value: Permission | str | int, expected: int) -> None:
        assert PermissionFactory().resolve(value).mask == expected

    def test_resolve_rejects_other_types(self) -> None:
        with pytest.raises(PermissionRegistrationError):
            PermissionFactory().resolve(1.5)  # type: ignore[arg-type]

    def test_describe_names_each_bit(self) -> None:
        factory = PermissionFactory()

        assert factory.describe(Permission(1 | 16 | (1 << 9))) == ["READ", "ADMINISTER", "BIT_9"]
