"""Outlook (MAPI) mail store adapter built on ``pywin32`` COM automation."""

from __future__ import annotations

import logging
import os
from collections.abc import Iterable, Iterator
from datetime import datetime
from pathlib import Path
from typing import Any

import win32com.client as win32
from pywintypes import com_error

from ..core.config import StoreSettings
from ..core.datetime_utils import as_wall_clock
from ..core.interfaces import (
    FolderNotFoundError,
    MailFolder,
    MailItem,
    MailStore,
    MailStoreError,
    StoreNotFoundError,
)
from ..core.models import MessageRecord, RecipientRef
from .fingerprint import compute_fingerprint

LOGGER = logging.getLogger(__name__)

EXCHANGE_USER = 0  # olExchangeUserAddressEntry
EXCHANGE_DISTRIBUTION_LIST = 1  # olExchangeDistributionListAddressEntry
MAX_LIST_DEPTH = 5


def _com_message(exc: com_error) -> str:
    return str(getattr(exc, "strerror", None) or exc)


def sender_of(item: Any) -> tuple[str, bool]:
    """Return ``(sender, internal)`` for an Outlook item.

    Exchange senders are reported by display name and flagged internal, SMTP
    senders by address. A blank sender type yields an empty sender.
    """
    email_type = (getattr(item, "SenderEmailType", "") or "").strip().upper()
    if email_type == "EX":
        return (getattr(item, "SenderName", "") or "").strip(), True
    if email_type:
        return (getattr(item, "SenderEmailAddress", "") or "").strip(), False
    return "", False


def received_time_of(item: Any) -> datetime | None:
    try:
        value = item.ReceivedTime
    except (AttributeError, com_error):
        return None
    if value is None:
        return None
    return as_wall_clock(value)


def _list_members(entry: Any, depth: int, seen: set[str]) -> Iterator[RecipientRef]:
    name = entry.Name
    if name in seen:
        return
    seen.add(name)
    if depth > MAX_LIST_DEPTH:
        yield RecipientRef.unresolved(name, "distribution list nesting too deep")
        return
    try:
        members = entry.GetExchangeDistributionList().GetExchangeDistributionListMembers()
    except com_error as exc:
        yield RecipientRef.unresolved(name, _com_message(exc))
        return
    if members is None:
        return
    for member in members:
        if member.AddressEntryUserType == EXCHANGE_DISTRIBUTION_LIST:
            yield from _list_members(member, depth + 1, seen)
        elif member.AddressEntryUserType == EXCHANGE_USER:
            yield RecipientRef(name=member.Name)


def directory_recipients(item: Any) -> tuple[RecipientRef, ...]:
    """Directory users on the item, with distribution lists flattened."""
    collected: list[RecipientRef] = []
    seen_lists: set[str] = set()
    for recipient in item.Recipients:
        try:
            entry = recipient.AddressEntry
            user_type = entry.AddressEntryUserType if entry is not None else None
        except com_error as exc:
            collected.append(RecipientRef.unresolved(recipient.Name, _com_message(exc)))
            continue
        if user_type == EXCHANGE_USER:
            collected.append(RecipientRef(name=recipient.Name))
        elif user_type == EXCHANGE_DISTRIBUTION_LIST:
            collected.extend(_list_members(entry, 1, seen_lists))
    unique: dict[str, RecipientRef] = {}
    for ref in collected:
        unique.setdefault(ref.name, ref)
    return tuple(unique.values())


def build_record(item: Any) -> MessageRecord:
    """Normalize an Outlook item into a :class:`MessageRecord`."""
    sender, internal = sender_of(item)
    received = received_time_of(item)
    recipients = directory_recipients(item)
    message_class = item.MessageClass or ""
    subject = item.Subject or ""
    return MessageRecord(
        message_class=message_class,
        subject=subject,
        sender=sender,
        received_time=received,
        recipients=recipients,
        fingerprint=compute_fingerprint(
            message_class, subject, sender, received, recipients
        ),
        sender_internal=internal,
    )


class OutlookMailItem(MailItem):
    """Wrap an Outlook item with save and delete helpers."""

    def __init__(self, item: Any, save_format: int) -> None:
        self._item = item
        self._save_format = save_format
        self.record = build_record(item)

    def save_as(self, path: Path) -> None:
        try:
            self._item.SaveAs(str(path), self._save_format)
        except com_error as exc:
            raise MailStoreError(f"SaveAs failed: {_com_message(exc)}") from exc

    def delete(self) -> None:
        try:
            self._item.Delete()
        except com_error as exc:
            raise MailStoreError(f"Delete failed: {_com_message(exc)}") from exc


class UnreadableMailItem(MailItem):
    """Stand-in for an item Outlook failed to load; it is never saved or deleted."""

    def __init__(self, folder_name: str, index: int, reason: str) -> None:
        self.reason = reason
        self.record = MessageRecord(
            message_class="",
            subject=f"Unreadable item {index} in {folder_name}: {reason}",
            sender="",
            received_time=None,
        )

    def save_as(self, path: Path) -> None:
        raise MailStoreError(f"Item cannot be saved: {self.reason}")

    def delete(self) -> None:
        raise MailStoreError(f"Item cannot be deleted: {self.reason}")


class OutlookFolder(MailFolder):
    """A folder whose items are visited newest index first."""

    def __init__(self, folder: Any, save_format: int) -> None:
        self._folder = folder
        self._save_format = save_format
        try:
            self.name = folder.FolderPath or folder.Name
        except com_error as exc:
            raise MailStoreError(
                f"Unable to read folder name: {_com_message(exc)}"
            ) from exc

    def item_count(self) -> int:
        try:
            return int(self._folder.Items.Count)
        except com_error as exc:
            raise MailStoreError(_com_message(exc)) from exc

    def items(self) -> Iterable[MailItem]:
        try:
            collection = self._folder.Items
            count = int(collection.Count)
        except com_error as exc:
            raise MailStoreError(
                f"Unable to list items in {self.name}: {_com_message(exc)}"
            ) from exc
        # Walking backwards keeps indices stable while items are deleted.
        for index in range(count, 0, -1):
            try:
                item = OutlookMailItem(collection.Item(index), self._save_format)
            except com_error as exc:
                reason = _com_message(exc)
                LOGGER.warning("Unable to read item %s in %s: %s", index, self.name, reason)
                item = UnreadableMailItem(self.name, index, reason)
            yield item


class OutlookMailStore(MailStore):
    """Attach a store in the local Outlook profile and walk its folders."""

    def __init__(self, settings: StoreSettings) -> None:
        self._settings = settings
        self._namespace: Any = None
        self._root: Any = None
        self._mounted_path: Path | None = None

    def attach(self) -> None:
        settings = self._settings
        try:
            self._namespace = win32.Dispatch("Outlook.Application").GetNamespace("MAPI")
            if settings.store_path is not None:
                store_path = Path(settings.store_path).resolve()
                if not store_path.is_file():
                    raise StoreNotFoundError(f"Store file not found: {store_path}")
                self._namespace.AddStore(str(store_path))
                self._mounted_path = store_path
                store = self._find_store(lambda s: _same_file(s.FilePath, store_path))
            elif settings.display_name:
                wanted = settings.display_name.strip().lower()
                store = self._find_store(
                    lambda s: (s.DisplayName or "").strip().lower() == wanted
                )
            else:
                store = self._namespace.DefaultStore
            if store is None:
                raise StoreNotFoundError(
                    f"Store not found: {settings.store_path or settings.display_name}"
                )
            self._root = store.GetRootFolder()
            display_name = store.DisplayName
        except com_error as exc:
            raise MailStoreError(f"Unable to attach store: {_com_message(exc)}") from exc
        LOGGER.info("Attached store %s", display_name)

    def folders(self) -> Iterable[MailFolder]:
        root = self._require_root()
        save_format = self._settings.save_format
        try:
            if not self._settings.folders:
                return [OutlookFolder(folder, save_format) for folder in _walk(root)]
            by_name = {folder.Name.lower(): folder for folder in _walk(root)}
        except com_error as exc:
            raise MailStoreError(f"Unable to list folders: {_com_message(exc)}") from exc
        selected: list[MailFolder] = []
        for name in self._settings.folders:
            folder = by_name.get(name.lower())
            if folder is None:
                raise FolderNotFoundError(f"Folder not found: {name}")
            selected.append(OutlookFolder(folder, save_format))
        return selected

    def detach(self) -> None:
        """Remove a store mounted by :meth:`attach`; profile stores stay."""
        root, mounted = self._root, self._mounted_path
        self._root = None
        self._mounted_path = None
        if mounted is None:
            return
        try:
            if root is None:
                store = self._find_store(lambda s: _same_file(s.FilePath, mounted))
                root = store.GetRootFolder() if store is not None else None
            if root is None:
                LOGGER.warning("Mounted store %s is no longer in the profile", mounted)
                return
            self._namespace.RemoveStore(root)
        except com_error as exc:
            raise MailStoreError(f"Unable to detach store: {_com_message(exc)}") from exc
        LOGGER.info("Detached store %s", mounted)

    # Internal helpers ---------------------------------------------------------
    def _find_store(self, predicate: Any) -> Any:
        for store in self._namespace.Stores:
            if predicate(store):
                return store
        return None

    def _require_root(self) -> Any:
        if self._root is None:
            raise MailStoreError("Store has not been attached")
        return self._root


def _same_file(file_path: str | None, expected: Path) -> bool:
    if not file_path:
        return False
    return os.path.normcase(os.path.abspath(file_path)) == os.path.normcase(str(expected))


def _walk(folder: Any) -> Iterator[Any]:
    for child in folder.Folders:
        yield child
        yield from _walk(child)


__all__ = [
    "OutlookFolder",
    "OutlookMailItem",
    "OutlookMailStore",
    "UnreadableMailItem",
    "build_record",
    "directory_recipients",
    "sender_of",
]
