"""Grant recipients read access to archived files."""

from __future__ import annotations

import logging
from pathlib import Path

from ..core.events import EventId, RunJournal
from ..core.interfaces import AclError, AclStore
from ..core.models import AccessGroup, AclEntry, FileAcl, MessageRecord
from ..core.results import ErrorKind, TaskResult
from ..directory.cache import DirectoryPrincipalCache
from ..directory.provisioner import GroupProvisioner, ProvisioningError

LOGGER = logging.getLogger(__name__)


def account_name(sam_account_name: str, netbios_domain: str | None = None) -> str:
    """Return the account name used in file access rules."""
    if netbios_domain and "\\" not in sam_account_name:
        return f"{netbios_domain}\\{sam_account_name}"
    return sam_account_name


class PermissionReconciler:
    """Add missing read-and-execute entries for a message's audience.

    Existing entries are never removed; an account that already has an entry
    is left alone, so repeated runs over the same file add nothing.
    """

    def __init__(
        self,
        acl_store: AclStore,
        provisioner: GroupProvisioner,
        cache: DirectoryPrincipalCache,
        *,
        netbios_domain: str | None = None,
        journal: RunJournal | None = None,
    ) -> None:
        self._acl_store = acl_store
        self._provisioner = provisioner
        self._cache = cache
        self._netbios_domain = netbios_domain
        self._journal = journal

    def account_for(self, group: AccessGroup) -> str:
        return account_name(group.sam_account_name, self._netbios_domain)

    def required_principals(
        self, record: MessageRecord, result: TaskResult
    ) -> list[str]:
        """Names whose access group must be on the file, in recipient order.

        Expansion failures are recorded on ``result`` unless the failed name is
        itself a known principal.
        """
        names: list[str] = []
        for recipient in record.recipients:
            if not recipient.resolved and recipient.name not in self._cache:
                result.add_error(
                    ErrorKind.RESOLVE_GROUP_FAILED,
                    f"{recipient.name}: {recipient.expansion_error}",
                )
                continue
            if recipient.name and recipient.name not in names:
                names.append(recipient.name)
        sender = (record.sender or "").strip()
        if sender and sender in self._cache and sender not in names:
            names.append(sender)
        return names

    def apply_permissions(self, path: Path, record: MessageRecord) -> TaskResult:
        """Ensure every required principal can read ``path``."""
        result = TaskResult(return_value=path)
        required = self.required_principals(record, result)
        if not required:
            LOGGER.debug("No principals to grant on %s", path)
            return result.finish()

        try:
            acl = self._acl_store.read_acl(path)
        except AclError as exc:
            result.add_error(ErrorKind.READ_ACL_FAILED, f"{path}: {exc}")
            return result.finish()

        for name in required:
            acl = self._grant(path, name, acl, result)

        LOGGER.debug(
            "Permissions on %s: %s required, %s error(s)",
            path,
            len(required),
            len(result.errors),
        )
        return result.finish()

    # Internal helpers ---------------------------------------------------------
    def _grant(self, path: Path, name: str, acl: FileAcl, result: TaskResult) -> FileAcl:
        principal = self._cache.get(name)
        if principal is None:
            result.add_error(
                ErrorKind.MAP_OBJECT_FAILED, f"{name}: not found in directory"
            )
            return acl
        try:
            group = self._provisioner.map_principal(principal)
        except ProvisioningError as exc:
            result.add_error(exc.kind, exc.context)
            return acl

        try:
            account = self._acl_store.resolve_account(self.account_for(group))
        except AclError as exc:
            result.add_error(ErrorKind.SET_ACL_FAILED, f"{path} ({group.name}): {exc}")
            return acl
        if account in acl:
            LOGGER.debug("%s already granted on %s", account, path)
            return acl

        updated = acl.with_entry(AclEntry(account=account))
        try:
            self._acl_store.write_acl(path, updated)
        except AclError as exc:
            result.add_error(ErrorKind.SET_ACL_FAILED, f"{path} ({account}): {exc}")
            return acl
        if self._journal is not None:
            self._journal.record(EventId.ACL_ENTRY_ADDED, f"{account} on {path}")
        return updated


__all__ = ["PermissionReconciler", "account_name"]
