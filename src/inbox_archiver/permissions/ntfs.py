"""NTFS access rule adapter using ``pywin32`` security APIs."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from pathlib import Path
from typing import Any

import ntsecuritycon
import pywintypes
import win32security

from ..core.interfaces import AclError, AclStore
from ..core.models import AclEntry, FileAcl

LOGGER = logging.getLogger(__name__)

READ_AND_EXECUTE = ntsecuritycon.FILE_GENERIC_READ | ntsecuritycon.FILE_GENERIC_EXECUTE


class NtfsAclStore(AclStore):
    """Read and extend file DACLs; owner and audit data are never touched.

    Accounts are compared by SID, so ``jdoe`` and ``CORP\\jdoe`` name the same
    entry. New allow entries are placed after explicit deny entries and before
    inherited ones, and inherited entries are left for Windows to propagate.
    """

    def read_acl(self, path: Path) -> FileAcl:
        """Return the allow entries of ``path`` as ``DOMAIN\\name`` accounts."""
        entries: list[AclEntry] = []
        seen: set[str] = set()
        for ace_type, _flags, _mask, sid in _access_entries(self._read_dacl(path)):
            if ace_type != ntsecuritycon.ACCESS_ALLOWED_ACE_TYPE:
                continue
            account = _account_for_sid(sid)
            if account.casefold() in seen:
                continue
            seen.add(account.casefold())
            entries.append(AclEntry(account=account))
        return FileAcl(entries=tuple(entries))

    def write_acl(self, path: Path, acl: FileAcl) -> None:
        """Add allow entries for accounts in ``acl`` missing from the file."""
        dacl = self._read_dacl(path)
        present_names: set[str] = set()
        present_sids: set[str] = set()
        for ace_type, _flags, _mask, sid in _access_entries(dacl):
            if ace_type == ntsecuritycon.ACCESS_ALLOWED_ACE_TYPE:
                present_sids.add(win32security.ConvertSidToStringSid(sid))
                present_names.add(_account_for_sid(sid).casefold())

        missing: list[Any] = []
        for entry in acl.entries:
            if entry.key in present_names:
                continue
            sid = self._lookup_sid(entry.account)
            key = win32security.ConvertSidToStringSid(sid)
            if key in present_sids:
                continue
            present_sids.add(key)
            missing.append(sid)
        if not missing:
            return

        updated = _canonical_dacl(path, dacl, missing)
        try:
            win32security.SetNamedSecurityInfo(
                str(path),
                win32security.SE_FILE_OBJECT,
                win32security.DACL_SECURITY_INFORMATION,
                None,
                None,
                updated,
                None,
            )
        except pywintypes.error as exc:
            raise AclError(f"Failed to write DACL on {path}: {exc.strerror}") from exc
        LOGGER.debug("Added %s entr(ies) to %s", len(missing), path)

    def resolve_account(self, account: str) -> str:
        """Return ``account`` in the ``DOMAIN\\name`` form reported by :meth:`read_acl`."""
        return _account_for_sid(self._lookup_sid(account))

    def can_resolve(self, account: str) -> bool:
        """Return ``True`` once ``account`` resolves to a SID on this host."""
        try:
            win32security.LookupAccountName(None, account)
        except pywintypes.error:
            return False
        return True

    # Internal helpers ---------------------------------------------------------
    def _read_dacl(self, path: Path) -> Any:
        try:
            security = win32security.GetNamedSecurityInfo(
                str(path),
                win32security.SE_FILE_OBJECT,
                win32security.DACL_SECURITY_INFORMATION,
            )
        except pywintypes.error as exc:
            raise AclError(f"Failed to read DACL of {path}: {exc.strerror}") from exc
        return security.GetSecurityDescriptorDacl()

    def _lookup_sid(self, account: str) -> Any:
        try:
            sid, _domain, _kind = win32security.LookupAccountName(None, account)
        except pywintypes.error as exc:
            raise AclError(f"Cannot resolve account {account}: {exc.strerror}") from exc
        return sid


def _access_entries(dacl: Any) -> Iterator[tuple[int, int, int, Any]]:
    """Yield ``(type, flags, mask, sid)`` for plain allow and deny entries."""
    if dacl is None:
        return
    for index in range(dacl.GetAceCount()):
        ace = dacl.GetAce(index)
        ace_type, flags = ace[0]
        if ace_type in (
            ntsecuritycon.ACCESS_ALLOWED_ACE_TYPE,
            ntsecuritycon.ACCESS_DENIED_ACE_TYPE,
        ):
            yield ace_type, flags, ace[1], ace[2]


def _canonical_dacl(path: Path, dacl: Any, new_sids: list[Any]) -> Any:
    """Explicit deny entries, then explicit allow entries, then the new grants.

    Inherited entries are dropped; ``SetNamedSecurityInfo`` re-applies them
    from the parent folder after the explicit ones.
    """
    updated = win32security.ACL()
    allowed: list[tuple[int, int, Any]] = []
    if dacl is not None:
        for index in range(dacl.GetAceCount()):
            ace = dacl.GetAce(index)
            ace_type, flags = ace[0]
            if flags & ntsecuritycon.INHERITED_ACE:
                continue
            if ace_type == ntsecuritycon.ACCESS_DENIED_ACE_TYPE:
                updated.AddAccessDeniedAceEx(
                    win32security.ACL_REVISION_DS, flags, ace[1], ace[2]
                )
            elif ace_type == ntsecuritycon.ACCESS_ALLOWED_ACE_TYPE:
                allowed.append((flags, ace[1], ace[2]))
            else:
                raise AclError(
                    f"Unsupported explicit access entry type {ace_type} on {path}"
                )
    for flags, mask, sid in allowed:
        updated.AddAccessAllowedAceEx(win32security.ACL_REVISION_DS, flags, mask, sid)
    for sid in new_sids:
        updated.AddAccessAllowedAceEx(
            win32security.ACL_REVISION_DS, 0, READ_AND_EXECUTE, sid
        )
    return updated


def _account_for_sid(sid: Any) -> str:
    try:
        name, domain, _kind = win32security.LookupAccountSid(None, sid)
    except pywintypes.error:
        return win32security.ConvertSidToStringSid(sid)
    return f"{domain}\\{name}" if domain else name


__all__ = ["NtfsAclStore", "READ_AND_EXECUTE"]
