"""Tests for access group provisioning."""

from __future__ import annotations

import pytest

from fakes import CONTAINER, FakeDirectory, group, user
from inbox_archiver.core.models import DirectoryPrincipal, ObjectClass
from inbox_archiver.core.results import ErrorKind
from inbox_archiver.directory import (
    DirectoryPrincipalCache,
    GroupProvisioner,
    ProvisioningError,
)
from inbox_archiver.directory.provisioner import escape_rdn

ACCESS_DN = f"CN=EmailAccess - Jane Doe,{CONTAINER}"


class SleepRecorder:
    def __init__(self) -> None:
        self.calls: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


def _provisioner(directory, cache, **kwargs) -> tuple[GroupProvisioner, SleepRecorder]:
    sleeper = SleepRecorder()
    options = {
        "container": CONTAINER,
        "convergence_attempts": 5,
        "convergence_interval": 0.5,
        "sleep": sleeper,
    }
    options.update(kwargs)
    return GroupProvisioner(directory, cache, **options), sleeper


def test_creates_group_once_and_serves_repeats_from_cache() -> None:
    jane = user("Jane Doe")
    directory = FakeDirectory()
    cache = DirectoryPrincipalCache([jane])
    provisioner, _ = _provisioner(directory, cache)

    first = provisioner.ensure_access_group(jane)
    reads_after_first = len(directory.reads)
    second = provisioner.ensure_access_group(jane)

    assert directory.created == [
        ("EmailAccess - Jane Doe", CONTAINER, (jane.distinguished_name,))
    ]
    assert first == second
    assert first.name == "EmailAccess - Jane Doe"
    assert first.owner == "Jane Doe"
    assert len(directory.reads) == reads_after_first
    assert "EmailAccess - Jane Doe" in cache
    assert ACCESS_DN in jane.member_of


def test_existing_group_is_found_without_creating() -> None:
    jane = user("Jane Doe")
    existing = DirectoryPrincipal(
        display_name="EmailAccess - Jane Doe",
        distinguished_name=ACCESS_DN,
        sam_account_name="EmailAccess - Jane Doe",
        object_class=ObjectClass.GROUP,
    )
    directory = FakeDirectory([existing])
    provisioner, _ = _provisioner(directory, DirectoryPrincipalCache([jane]))

    access = provisioner.ensure_access_group(jane)

    assert directory.created == []
    assert access.distinguished_name == ACCESS_DN


def test_membership_of_a_cached_group_skips_directory_reads() -> None:
    existing = DirectoryPrincipal(
        display_name="Jane Doe Mail Access",
        distinguished_name=ACCESS_DN.upper(),
        sam_account_name="jdoe-mail",
        object_class=ObjectClass.GROUP,
    )
    jane = user("Jane Doe", member_of=[ACCESS_DN])
    directory = FakeDirectory()
    cache = DirectoryPrincipalCache([jane, existing])
    provisioner, _ = _provisioner(directory, cache)

    access = provisioner.ensure_access_group(jane)

    assert access.sam_account_name == existing.sam_account_name
    assert directory.reads == []
    assert directory.created == []


def test_waits_for_replication_before_returning() -> None:
    jane = user("Jane Doe")
    directory = FakeDirectory(lag=3)
    provisioner, sleeper = _provisioner(directory, DirectoryPrincipalCache([jane]))

    access = provisioner.ensure_access_group(jane)

    assert access.distinguished_name == ACCESS_DN
    assert sleeper.calls == [0.5, 0.5, 0.5]


def test_gives_up_when_group_never_becomes_visible() -> None:
    jane = user("Jane Doe")
    directory = FakeDirectory(lag=10)
    cache = DirectoryPrincipalCache([jane])
    provisioner, sleeper = _provisioner(directory, cache)

    with pytest.raises(ProvisioningError) as excinfo:
        provisioner.ensure_access_group(jane)

    assert excinfo.value.kind is ErrorKind.GET_OBJECT_FAILED
    assert len(sleeper.calls) == 4
    assert "EmailAccess - Jane Doe" not in cache


def test_visibility_check_must_accept_the_group() -> None:
    jane = user("Jane Doe")
    directory = FakeDirectory()
    answers = iter([False, False, True])
    checked: list[str] = []

    def accepts(candidate: DirectoryPrincipal) -> bool:
        checked.append(candidate.distinguished_name)
        return next(answers)

    provisioner, sleeper = _provisioner(
        directory, DirectoryPrincipalCache([jane]), visibility_check=accepts
    )

    provisioner.ensure_access_group(jane)

    assert checked == [ACCESS_DN] * 3
    assert len(sleeper.calls) == 2


def test_create_failure_is_reported() -> None:
    jane = user("Jane Doe")
    directory = FakeDirectory()
    directory.fail_create = True
    provisioner, _ = _provisioner(directory, DirectoryPrincipalCache([jane]))

    with pytest.raises(ProvisioningError) as excinfo:
        provisioner.ensure_access_group(jane)

    assert excinfo.value.kind is ErrorKind.CREATE_GROUP_FAILED
    assert "insufficient access rights" in excinfo.value.context


def test_lookup_failure_is_reported_as_get_object_failed() -> None:
    jane = user("Jane Doe")
    directory = FakeDirectory()
    directory.fail_reads = True
    provisioner, _ = _provisioner(directory, DirectoryPrincipalCache([jane]))

    with pytest.raises(ProvisioningError) as excinfo:
        provisioner.ensure_access_group(jane)

    assert excinfo.value.kind is ErrorKind.GET_OBJECT_FAILED
    assert directory.created == []


def test_map_principal_returns_security_groups_directly() -> None:
    sales = group("Sales Team", sam="sales")
    directory = FakeDirectory()
    provisioner, _ = _provisioner(directory, DirectoryPrincipalCache([sales]))

    access = provisioner.map_principal(sales)

    assert access.sam_account_name == "sales"
    assert access.distinguished_name == sales.distinguished_name
    assert directory.created == []
    assert directory.reads == []


def test_map_principal_rejects_other_object_classes() -> None:
    printer = DirectoryPrincipal(
        display_name="Floor 3 Printer",
        distinguished_name="CN=Floor 3 Printer,OU=Devices,DC=corp,DC=example",
        sam_account_name="PRN3$",
        object_class=ObjectClass.OTHER,
    )
    provisioner, _ = _provisioner(FakeDirectory(), DirectoryPrincipalCache([printer]))

    with pytest.raises(ProvisioningError) as excinfo:
        provisioner.map_principal(printer)

    assert excinfo.value.kind is ErrorKind.MAP_OBJECT_BAD_TYPE


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("EmailAccess - Jane Doe", "EmailAccess - Jane Doe"),
        ("Doe, Jane", "Doe\\, Jane"),
        ("#hash", "\\#hash"),
        ("trailing ", "trailing\\ "),
    ],
)
def test_escape_rdn(value: str, expected: str) -> None:
    assert escape_rdn(value) == expected
