"""Lookup and lazy creation of per-principal access groups."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from ..core.events import EventId, RunJournal
from ..core.interfaces import DirectoryError, DirectoryService
from ..core.models import AccessGroup, DirectoryPrincipal, ObjectClass
from ..core.results import ErrorKind
from .cache import DirectoryPrincipalCache

LOGGER = logging.getLogger(__name__)

DEFAULT_GROUP_PREFIX = "EmailAccess - "

VisibilityCheck = Callable[[DirectoryPrincipal], bool]


class ProvisioningError(RuntimeError):
    """Raised when an access group cannot be found, created, or confirmed."""

    def __init__(self, kind: ErrorKind, context: str) -> None:
        super().__init__(f"{kind.value}: {context}")
        self.kind = kind
        self.context = context


def escape_rdn(value: str) -> str:
    """Escape a value for use inside a ``CN=`` relative distinguished name."""
    escaped = "".join(f"\\{char}" if char in ',+"\\<>;=' else char for char in value)
    if escaped.startswith((" ", "#")):
        escaped = f"\\{escaped}"
    if len(value) > 1 and value.endswith(" "):
        escaped = f"{escaped[:-1]}\\ "
    return escaped


def _to_access_group(principal: DirectoryPrincipal, owner: str) -> AccessGroup:
    return AccessGroup(
        name=principal.display_name,
        distinguished_name=principal.distinguished_name,
        sam_account_name=principal.sam_account_name,
        owner=owner,
    )


class GroupProvisioner:
    """Resolve the access group for a principal, creating it at most once.

    After creating a group the provisioner polls the directory until the new
    object is readable, and optionally until ``visibility_check`` accepts it,
    so callers never receive a group that later ACL writes cannot resolve.
    """

    # pylint: disable=too-many-arguments
    def __init__(
        self,
        directory: DirectoryService,
        cache: DirectoryPrincipalCache,
        *,
        container: str,
        group_prefix: str = DEFAULT_GROUP_PREFIX,
        convergence_attempts: int = 10,
        convergence_interval: float = 3.0,
        visibility_check: VisibilityCheck | None = None,
        sleep: Callable[[float], None] = time.sleep,
        journal: RunJournal | None = None,
    ) -> None:
        if convergence_attempts <= 0:
            raise ValueError("convergence_attempts must be positive")
        self._directory = directory
        self._cache = cache
        self._container = container
        self._group_prefix = group_prefix
        self._attempts = convergence_attempts
        self._interval = convergence_interval
        self._visibility_check = visibility_check
        self._sleep = sleep
        self._journal = journal

    def group_name(self, principal: DirectoryPrincipal) -> str:
        return f"{self._group_prefix}{principal.display_name}"

    def group_dn(self, group_name: str) -> str:
        return f"CN={escape_rdn(group_name)},{self._container}"

    def map_principal(self, principal: DirectoryPrincipal) -> AccessGroup:
        """Return the group that grants access on behalf of ``principal``.

        Security groups stand for themselves. Users get a personal access
        group. Any other object class raises ``MapObjectBadType``.
        """
        if principal.object_class is ObjectClass.GROUP:
            return _to_access_group(principal, owner=principal.display_name)
        if principal.object_class is ObjectClass.USER:
            return self.ensure_access_group(principal)
        raise ProvisioningError(
            ErrorKind.MAP_OBJECT_BAD_TYPE,
            f"{principal.display_name} ({principal.distinguished_name}) "
            f"has unsupported object class {principal.object_class.value}",
        )

    def ensure_access_group(self, principal: DirectoryPrincipal) -> AccessGroup:
        """Find or create the personal access group of ``principal``."""
        name = self.group_name(principal)
        owner = principal.display_name

        cached = self._cache.get(name)
        if cached is not None:
            return _to_access_group(cached, owner)

        dn = self.group_dn(name)
        member_of = {group.casefold() for group in principal.member_of}
        if dn.casefold() in member_of:
            known = self._cache.get_by_dn(dn)
            if known is not None:
                return _to_access_group(known, owner)

        found = self._find(dn)
        if found is not None:
            self._cache.add(found)
            self._cache.record_membership(owner, found.distinguished_name)
            self._record(EventId.GROUP_FOUND, f"{name} ({found.distinguished_name})")
            return _to_access_group(found, owner)

        LOGGER.info("Creating access group %s in %s", name, self._container)
        try:
            self._directory.create_group(
                name, self._container, [principal.distinguished_name]
            )
        except DirectoryError as exc:
            raise ProvisioningError(
                ErrorKind.CREATE_GROUP_FAILED, f"{name}: {exc}"
            ) from exc
        self._record(EventId.GROUP_CREATED, f"{name} ({dn})")

        confirmed = self._await_visibility(dn)
        if confirmed is None:
            raise ProvisioningError(
                ErrorKind.GET_OBJECT_FAILED,
                f"{dn} not visible after {self._attempts} attempt(s)",
            )
        self._cache.add(confirmed)
        self._cache.record_membership(owner, confirmed.distinguished_name)
        return _to_access_group(confirmed, owner)

    # Internal helpers ---------------------------------------------------------
    def _find(self, dn: str) -> DirectoryPrincipal | None:
        try:
            return self._directory.find_object(dn)
        except DirectoryError as exc:
            raise ProvisioningError(ErrorKind.GET_OBJECT_FAILED, f"{dn}: {exc}") from exc

    def _await_visibility(self, dn: str) -> DirectoryPrincipal | None:
        for attempt in range(1, self._attempts + 1):
            try:
                candidate = self._directory.find_object(dn)
            except DirectoryError as exc:
                LOGGER.debug("Read of %s failed on attempt %s: %s", dn, attempt, exc)
                candidate = None
            visible = self._visibility_check
            if candidate is not None and (visible is None or visible(candidate)):
                LOGGER.debug("Group %s visible after %s attempt(s)", dn, attempt)
                return candidate
            if attempt < self._attempts:
                self._sleep(self._interval)
        return None

    def _record(self, event_id: EventId, context: str) -> None:
        if self._journal is not None:
            self._journal.record(event_id, context)
        else:
            LOGGER.info("%s", context)


__all__ = [
    "DEFAULT_GROUP_PREFIX",
    "GroupProvisioner",
    "ProvisioningError",
    "VisibilityCheck",
    "escape_rdn",
]
