"""LDAP directory adapter built on ``ldap3``."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Sequence
from types import TracebackType
from typing import Any

from ldap3 import BASE, NONE, SUBTREE, Connection, Server
from ldap3.core.exceptions import LDAPException

from ..core.config import DirectorySettings
from ..core.interfaces import DirectoryError, DirectoryService
from ..core.models import DirectoryPrincipal, ObjectClass
from .provisioner import escape_rdn

LOGGER = logging.getLogger(__name__)

PRINCIPAL_ATTRIBUTES = [
    "displayName",
    "distinguishedName",
    "sAMAccountName",
    "objectClass",
    "memberOf",
]
GLOBAL_SECURITY_GROUP = -2147483646
SUCCESS = 0
NO_SUCH_OBJECT = 32
PAGE_SIZE = 500
SAM_MAX_LENGTH = 256
SAM_DISALLOWED = re.compile(r'["\[\]:;|=+*?<>/\\,]')


class LdapDirectory(DirectoryService):
    """Thin wrapper around an ``ldap3`` connection."""

    def __init__(self, settings: DirectorySettings) -> None:
        """Initialise the client with directory settings."""
        self._settings = settings
        self._connection: Connection | None = None

    # Context manager helpers -------------------------------------------------
    def __enter__(self) -> LdapDirectory:
        """Bind on entering a context manager scope."""
        self.connect()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Ensure the connection is unbound on context exit."""
        self.close()

    # Public API ---------------------------------------------------------------
    def connect(self) -> None:
        """Open and bind the LDAP connection."""
        if self._connection is not None:
            return
        settings = self._settings
        LOGGER.debug(
            "Binding to directory %s (ssl=%s) as %s",
            settings.server,
            settings.use_ssl,
            settings.username,
        )
        try:
            server = Server(
                settings.server,
                port=settings.port,
                use_ssl=settings.use_ssl,
                get_info=NONE,
            )
            self._connection = Connection(
                server,
                user=settings.username,
                password=settings.password,
                auto_bind=True,
                raise_exceptions=False,
            )
        except LDAPException as exc:
            raise DirectoryError(f"Failed to bind to {settings.server}: {exc}") from exc

    def find_object(self, distinguished_name: str) -> DirectoryPrincipal | None:
        """Read the object at ``distinguished_name``."""
        connection = self._require_connection()
        try:
            found = connection.search(
                search_base=distinguished_name,
                search_filter="(objectClass=*)",
                search_scope=BASE,
                attributes=PRINCIPAL_ATTRIBUTES,
            )
        except LDAPException as exc:
            raise DirectoryError(f"Lookup of {distinguished_name} failed: {exc}") from exc
        if not found:
            if connection.result.get("result") == NO_SUCH_OBJECT:
                return None
            raise DirectoryError(
                f"Lookup of {distinguished_name} failed: "
                f"{connection.result.get('description')}"
            )
        for entry in _result_entries(connection.response or []):
            return _to_principal(entry)
        return None

    def search(
        self, search_filter: str, search_base: str, *, subtree: bool = True
    ) -> Sequence[DirectoryPrincipal]:
        """Run a paged search and convert every entry into a principal."""
        connection = self._require_connection()
        LOGGER.debug("Searching %s for %s", search_base, search_filter)
        try:
            pages = connection.extend.standard.paged_search(
                search_base=search_base,
                search_filter=search_filter,
                search_scope=SUBTREE if subtree else BASE,
                attributes=PRINCIPAL_ATTRIBUTES,
                paged_size=PAGE_SIZE,
                generator=True,
            )
            principals = [_to_principal(entry) for entry in _result_entries(pages)]
        except LDAPException as exc:
            raise DirectoryError(f"Search under {search_base} failed: {exc}") from exc
        # With raise_exceptions=False a failed search only shows up in the result.
        status = connection.result.get("result") if connection.result else None
        if status not in (None, SUCCESS):
            raise DirectoryError(
                f"Search under {search_base} failed: "
                f"{connection.result.get('description')}"
            )
        return principals

    def create_group(
        self, name: str, container: str, initial_members: Sequence[str] = ()
    ) -> None:
        """Create a global security group with optional initial members."""
        connection = self._require_connection()
        dn = f"CN={escape_rdn(name)},{container}"
        attributes: dict[str, Any] = {
            "displayName": name,
            "sAMAccountName": _sam_account_name(name),
            "groupType": GLOBAL_SECURITY_GROUP,
        }
        if initial_members:
            attributes["member"] = list(initial_members)
        try:
            created = connection.add(dn, ["top", "group"], attributes)
        except LDAPException as exc:
            raise DirectoryError(f"Creating {dn} failed: {exc}") from exc
        if not created:
            raise DirectoryError(
                f"Creating {dn} failed: {connection.result.get('description')} "
                f"{connection.result.get('message', '')}".strip()
            )

    def close(self) -> None:
        """Unbind the LDAP connection."""
        if self._connection is None:
            return
        try:
            LOGGER.debug("Unbinding directory connection")
            self._connection.unbind()
        except LDAPException:  # pragma: no cover - depends on server state
            LOGGER.debug("LDAP unbind raised; suppressing during shutdown")
        finally:
            self._connection = None

    # Internal helpers ---------------------------------------------------------
    def _require_connection(self) -> Connection:
        if self._connection is None:
            raise DirectoryError("Directory connection has not been established")
        return self._connection


def _sam_account_name(name: str) -> str:
    cleaned = SAM_DISALLOWED.sub("", name).strip(" .")
    return cleaned[:SAM_MAX_LENGTH]


def _result_entries(response: Iterable[dict[str, Any]]) -> Iterable[dict[str, Any]]:
    for entry in response:
        if entry.get("type") == "searchResEntry":
            yield entry


def _first(value: Any) -> str:
    if isinstance(value, (list, tuple)):
        return str(value[0]) if value else ""
    return "" if value is None else str(value)


def _many(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [str(item) for item in value]
    return [str(value)]


def object_class_from(classes: Iterable[str]) -> ObjectClass:
    lowered = {value.lower() for value in classes}
    if "group" in lowered:
        return ObjectClass.GROUP
    if "user" in lowered and "computer" not in lowered:
        return ObjectClass.USER
    return ObjectClass.OTHER


def _to_principal(entry: dict[str, Any]) -> DirectoryPrincipal:
    attributes = entry.get("attributes", {})
    dn = _first(attributes.get("distinguishedName")) or str(entry.get("dn", ""))
    sam = _first(attributes.get("sAMAccountName"))
    return DirectoryPrincipal(
        display_name=_first(attributes.get("displayName")) or sam,
        distinguished_name=dn,
        sam_account_name=sam,
        object_class=object_class_from(_many(attributes.get("objectClass"))),
        member_of=set(_many(attributes.get("memberOf"))),
    )


__all__ = ["LdapDirectory", "object_class_from"]
