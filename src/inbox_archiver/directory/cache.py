"""In-memory index of directory users and groups for a single run."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator

from ..core.interfaces import DirectoryService
from ..core.models import DirectoryPrincipal

LOGGER = logging.getLogger(__name__)

PRINCIPAL_FILTER = "(|(objectCategory=person)(objectClass=group))"


class DirectoryPrincipalCache:
    """Principals keyed by display name; the first entry for a name wins.

    The cache is mutated in place as groups are found or created during a run
    and is not safe for concurrent use.
    """

    def __init__(self, principals: Iterable[DirectoryPrincipal] = ()) -> None:
        self._by_name: dict[str, DirectoryPrincipal] = {}
        self._by_dn: dict[str, DirectoryPrincipal] = {}
        for principal in principals:
            self.add(principal)

    def __contains__(self, display_name: object) -> bool:
        return isinstance(display_name, str) and display_name in self._by_name

    def __len__(self) -> int:
        return len(self._by_name)

    def __iter__(self) -> Iterator[DirectoryPrincipal]:
        return iter(self._by_name.values())

    def get(self, display_name: str) -> DirectoryPrincipal | None:
        return self._by_name.get(display_name)

    def get_by_dn(self, distinguished_name: str) -> DirectoryPrincipal | None:
        return self._by_dn.get(distinguished_name.casefold())

    def add(self, principal: DirectoryPrincipal) -> DirectoryPrincipal:
        """Index ``principal`` unless its display name is already known.

        Returns the principal that is cached under the name afterwards.
        """
        existing = self._by_name.get(principal.display_name)
        if existing is not None:
            if existing.distinguished_name != principal.distinguished_name:
                LOGGER.debug(
                    "Ignoring duplicate display name %s (%s)",
                    principal.display_name,
                    principal.distinguished_name,
                )
            return existing
        self._by_name[principal.display_name] = principal
        self._by_dn.setdefault(principal.distinguished_name.casefold(), principal)
        return principal

    def record_membership(self, display_name: str, group_dn: str) -> None:
        """Note that ``display_name`` is now a member of ``group_dn``."""
        principal = self._by_name.get(display_name)
        if principal is not None:
            principal.member_of.add(group_dn)

    def refresh(
        self,
        directory: DirectoryService,
        search_base: str,
        search_filter: str = PRINCIPAL_FILTER,
    ) -> int:
        """Replace the cache contents with principals loaded from ``directory``."""
        principals = directory.search(search_filter, search_base)
        self._by_name.clear()
        self._by_dn.clear()
        for principal in principals:
            self.add(principal)
        LOGGER.info(
            "Loaded %s directory principal(s) from %s", len(self._by_name), search_base
        )
        return len(self._by_name)


__all__ = ["DirectoryPrincipalCache", "PRINCIPAL_FILTER"]
