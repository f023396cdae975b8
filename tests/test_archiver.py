"""End-to-end tests for the archive run using in-memory collaborators."""

from __future__ import annotations

from pathlib import Path

from fakes import (
    CONTAINER,
    FakeAclStore,
    FakeDirectory,
    FakeFolder,
    FakeMailItem,
    FakeStore,
    RecordingRepository,
    make_record,
    make_route,
    user,
)
from inbox_archiver.archive import LocalFileSystem, MessageArchiver
from inbox_archiver.core.events import EventId
from inbox_archiver.core.interfaces import (
    FolderNotFoundError,
    MailStoreError,
    StoreNotFoundError,
)
from inbox_archiver.core.models import RouteAction
from inbox_archiver.core.results import ErrorKind
from inbox_archiver.directory import DirectoryPrincipalCache, GroupProvisioner
from inbox_archiver.permissions import PermissionReconciler
from inbox_archiver.routing import RouteTable

FINGERPRINT = "0123456789abcdef0123456789abcdef"


def _routes(*routes) -> RouteTable:
    return RouteTable({route.message_class: route for route in routes})


def _reconciler(acl_store: FakeAclStore) -> PermissionReconciler:
    cache = DirectoryPrincipalCache([user("Jane Doe")])
    provisioner = GroupProvisioner(
        FakeDirectory(), cache, container=CONTAINER, sleep=lambda _: None
    )
    return PermissionReconciler(acl_store, provisioner, cache)


def _archiver(store, tmp_path: Path, *, routes=None, acl_store=None, **kwargs):
    return MessageArchiver(
        store,
        routes or _routes(make_route()),
        LocalFileSystem(),
        target_root=tmp_path,
        reconciler=_reconciler(acl_store or FakeAclStore()),
        **kwargs,
    )


def _expected_path(tmp_path: Path, subject: str = "RE Q1 Report") -> Path:
    return tmp_path / "2012-01" / "__unknown_sender" / f"{subject}.{FINGERPRINT}.msg"


def test_saves_grants_and_deletes(tmp_path: Path) -> None:
    item = FakeMailItem(make_record())
    store = FakeStore([FakeFolder("Inbox", [item])])
    acl_store = FakeAclStore()

    result = _archiver(store, tmp_path, acl_store=acl_store).run()

    path = _expected_path(tmp_path)
    assert result.success
    assert (result.max_items, result.total_items, result.skipped_items) == (1, 1, 0)
    assert item.saved_to == [path]
    assert path.is_file()
    assert acl_store.accounts(path) == ["EmailAccess - Jane Doe"]
    assert item.deleted
    assert store.attached and store.detached


def test_unrouted_item_is_skipped_once_without_error(tmp_path: Path) -> None:
    item = FakeMailItem(make_record(message_class="IPM.Appointment"))
    store = FakeStore([FakeFolder("Inbox", [item])])

    result = _archiver(store, tmp_path).run()

    assert result.success
    assert (result.total_items, result.skipped_items) == (0, 1)
    assert item.saved_to == []
    assert not item.deleted


def test_previously_saved_file_is_skipped_but_still_granted(tmp_path: Path) -> None:
    path = _expected_path(tmp_path)
    path.parent.mkdir(parents=True)
    path.write_bytes(b"earlier run")
    item = FakeMailItem(make_record())
    acl_store = FakeAclStore()

    result = _archiver(
        FakeStore([FakeFolder("Inbox", [item])]), tmp_path, acl_store=acl_store
    ).run()

    assert result.success
    assert (result.total_items, result.skipped_items) == (0, 1)
    assert item.saved_to == []
    assert path.read_bytes() == b"earlier run"
    assert acl_store.accounts(path) == ["EmailAccess - Jane Doe"]
    assert item.deleted


def test_save_error_with_file_on_disk_counts_as_saved(tmp_path: Path) -> None:
    item = FakeMailItem(make_record(), save_error=True, write_despite_error=True)

    result = _archiver(FakeStore([FakeFolder("Inbox", [item])]), tmp_path).run()

    assert result.success
    assert result.total_items == 1
    assert item.deleted


def test_failed_save_retains_item(tmp_path: Path) -> None:
    item = FakeMailItem(make_record(), save_error=True)
    acl_store = FakeAclStore()

    result = _archiver(
        FakeStore([FakeFolder("Inbox", [item])]), tmp_path, acl_store=acl_store
    ).run()

    assert [error.kind for error in result.errors] == [ErrorKind.SAVE_MESSAGE_FAILED]
    assert result.total_items == 0
    assert acl_store.writes == []
    assert not item.deleted


def test_permission_failure_retains_item(tmp_path: Path) -> None:
    item = FakeMailItem(make_record())
    acl_store = FakeAclStore()
    acl_store.reject_accounts = {"EmailAccess - Jane Doe"}

    result = _archiver(
        FakeStore([FakeFolder("Inbox", [item])]), tmp_path, acl_store=acl_store
    ).run()

    assert result.has_error(ErrorKind.SET_ACL_FAILED)
    assert result.total_items == 1
    assert _expected_path(tmp_path).is_file()
    assert not item.deleted


def test_route_without_permissions_deletes_after_save(tmp_path: Path) -> None:
    item = FakeMailItem(make_record())
    acl_store = FakeAclStore()
    routes = _routes(make_route(apply_permissions=False))

    result = _archiver(
        FakeStore([FakeFolder("Inbox", [item])]),
        tmp_path,
        routes=routes,
        acl_store=acl_store,
    ).run()

    assert result.success
    assert acl_store.writes == []
    assert item.deleted


def test_delete_route_deletes_without_saving(tmp_path: Path) -> None:
    record = make_record(message_class="REPORT.IPM.Note.IPNRN")
    item = FakeMailItem(record)
    routes = _routes(
        make_route(message_class="REPORT.IPM.Note.IPNRN", action=RouteAction.DELETE)
    )

    result = _archiver(
        FakeStore([FakeFolder("Inbox", [item])]), tmp_path, routes=routes
    ).run()

    assert result.success
    assert item.saved_to == []
    assert item.deleted
    assert list(tmp_path.iterdir()) == []


def test_delete_failure_is_recorded(tmp_path: Path) -> None:
    item = FakeMailItem(make_record(), delete_error=True)

    result = _archiver(FakeStore([FakeFolder("Inbox", [item])]), tmp_path).run()

    assert [error.kind for error in result.errors] == [ErrorKind.DELETE_MESSAGE_FAILED]
    assert result.total_items == 1


def test_deletion_can_be_disabled(tmp_path: Path) -> None:
    item = FakeMailItem(make_record())
    repository = RecordingRepository()

    result = _archiver(
        FakeStore([FakeFolder("Inbox", [item])]),
        tmp_path,
        repository=repository,
        delete_enabled=False,
    ).run()

    assert result.success
    assert not item.deleted
    retained = [
        context
        for _, event_id, context in repository.events
        if event_id == EventId.MESSAGE_RETAINED
    ]
    assert retained and "deletion disabled" in retained[0]


def test_sink_export_and_failure(tmp_path: Path) -> None:
    routes = _routes(make_route(write_to_sink=True))
    exported = RecordingRepository()
    item = FakeMailItem(make_record())

    _archiver(
        FakeStore([FakeFolder("Inbox", [item])]),
        tmp_path,
        routes=routes,
        repository=exported,
    ).run()

    assert exported.messages == [("RE: Q1 Report", _expected_path(tmp_path))]

    failing = RecordingRepository(fail_persist=True)
    other = FakeMailItem(make_record(subject="Second", fingerprint="f" * 32))
    result = _archiver(
        FakeStore([FakeFolder("Inbox", [other])]),
        tmp_path,
        routes=routes,
        repository=failing,
    ).run()

    assert [error.kind for error in result.errors] == [ErrorKind.WRITE_TO_SINK_FAILED]
    assert other.deleted


def test_missing_store_is_fatal(tmp_path: Path) -> None:
    store = FakeStore([], attach_error=StoreNotFoundError("archive.pst"))
    repository = RecordingRepository()
    archiver = _archiver(store, tmp_path, repository=repository)

    result = archiver.run()

    assert [error.kind for error in result.errors] == [ErrorKind.STORE_NOT_FOUND]
    assert store.detached
    assert archiver.run_id in repository.summaries


def test_attach_failure_is_fatal(tmp_path: Path) -> None:
    store = FakeStore([], attach_error=MailStoreError("profile locked"))

    result = _archiver(store, tmp_path).run()

    assert [error.kind for error in result.errors] == [ErrorKind.ATTACH_STORE_FAILED]


def test_missing_folder_and_detach_failure_are_reported(tmp_path: Path) -> None:
    class MissingFolderStore(FakeStore):
        def folders(self):
            raise FolderNotFoundError("Archive")

    store = MissingFolderStore([], detach_error=True)

    result = _archiver(store, tmp_path).run()

    assert [error.kind for error in result.errors] == [
        ErrorKind.FOLDER_NOT_FOUND,
        ErrorKind.DETACH_STORE_FAILED,
    ]


def test_item_count_failure_still_processes_items(tmp_path: Path) -> None:
    item = FakeMailItem(make_record())

    result = _archiver(
        FakeStore([FakeFolder("Inbox", [item], count_error=True)]), tmp_path
    ).run()

    assert result.has_error(ErrorKind.GET_ITEM_COUNT_FAILED)
    assert result.total_items == 1
    assert item.deleted


def test_max_messages_limits_processing_across_folders(tmp_path: Path) -> None:
    items = [
        FakeMailItem(make_record(subject=f"Message {index}", fingerprint=f"{index:032x}"))
        for index in range(3)
    ]
    late = FakeMailItem(make_record(subject="Late", fingerprint="e" * 32))
    store = FakeStore([FakeFolder("Inbox", items), FakeFolder("Sent Items", [late])])
    progress: list[str] = []

    result = _archiver(
        store, tmp_path, max_messages=2, progress_callback=progress.append
    ).run()

    assert result.total_items == 2
    assert [item.deleted for item in items] == [True, True, False]
    assert not late.deleted
    assert len(progress) == 2


def test_run_summary_and_events_are_persisted(tmp_path: Path) -> None:
    repository = RecordingRepository()
    archiver = _archiver(
        FakeStore([FakeFolder("Inbox", [FakeMailItem(make_record())])]),
        tmp_path,
        repository=repository,
    )

    archiver.run()

    assert repository.summaries[archiver.run_id] == (1, 1, 0)
    event_ids = [event_id for _, event_id, _ in repository.events]
    assert event_ids[0] == EventId.RUN_STARTED
    assert event_ids[-1] == EventId.RUN_FINISHED
    assert EventId.MESSAGE_SAVED in event_ids
    assert EventId.MESSAGE_DELETED in event_ids


def test_store_mounted_before_a_failed_lookup_is_still_detached(tmp_path: Path) -> None:
    store = FakeStore(
        [], attach_error=StoreNotFoundError("archive.pst"), detach_error=True
    )

    result = _archiver(store, tmp_path).run()

    assert [error.kind for error in result.errors] == [
        ErrorKind.STORE_NOT_FOUND,
        ErrorKind.DETACH_STORE_FAILED,
    ]


def test_unreadable_item_is_counted_as_skipped(tmp_path: Path) -> None:
    unreadable = FakeMailItem(
        make_record(message_class="", subject="Unreadable item 2 in Inbox: locked")
    )
    item = FakeMailItem(make_record())
    repository = RecordingRepository()

    result = _archiver(
        FakeStore([FakeFolder("Inbox", [unreadable, item])]),
        tmp_path,
        repository=repository,
    ).run()

    assert result.success
    assert (result.total_items, result.skipped_items) == (1, 1)
    assert unreadable.saved_to == [] and not unreadable.deleted
    assert item.deleted
    skipped = [
        context
        for _, event_id, context in repository.events
        if event_id == EventId.MESSAGE_SKIPPED
    ]
    assert skipped == ["Unreadable item 2 in Inbox: locked"]


def test_item_listing_failure_moves_on_to_next_folder(tmp_path: Path) -> None:
    class BrokenFolder(FakeFolder):
        def items(self):
            raise MailStoreError("items unavailable")

    item = FakeMailItem(make_record())
    store = FakeStore([BrokenFolder("Inbox", []), FakeFolder("Archive", [item])])

    result = _archiver(store, tmp_path).run()

    assert [error.kind for error in result.errors] == [ErrorKind.GET_ITEM_COUNT_FAILED]
    assert item.deleted
    assert store.detached
