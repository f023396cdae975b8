"""Routing table loading and message class resolution."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator, Mapping
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..core.interfaces import ConfigurationError
from ..core.models import Route, RouteAction

LOGGER = logging.getLogger(__name__)


class TemplateConfig(BaseModel):
    """Save-path shape shared by one or more routes."""

    model_config = ConfigDict(extra="forbid")

    use_date: bool
    use_sender: bool
    static_suffix: str = ""
    file_extension: str = Field(min_length=1)

    @field_validator("file_extension")
    @classmethod
    def _leading_dot(cls, value: str) -> str:
        value = value.strip()
        if not value or value == ".":
            raise ValueError("file_extension must not be empty")
        return value if value.startswith(".") else f".{value}"

    @field_validator("static_suffix")
    @classmethod
    def _trim_separators(cls, value: str) -> str:
        return value.strip().strip("\\/")


class RouteConfig(BaseModel):
    """A routing rule as written in the configuration file."""

    model_config = ConfigDict(extra="forbid")

    message_class: str = Field(min_length=1)
    template: str = Field(min_length=1)
    apply_permissions: bool
    action: RouteAction
    write_to_sink: bool = False

    @field_validator("message_class")
    @classmethod
    def _strip_class(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("message_class must not be blank")
        return stripped

    @field_validator("action", mode="before")
    @classmethod
    def _lower_action(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower()
        return value


class RoutingConfig(BaseModel):
    """Root document of the routing configuration file."""

    model_config = ConfigDict(extra="forbid")

    templates: dict[str, TemplateConfig]
    routes: list[RouteConfig] = Field(min_length=1)


class RouteTable(Mapping[str, Route]):
    """Immutable lookup of routes keyed by exact message class."""

    def __init__(self, routes: Mapping[str, Route]) -> None:
        self._routes = dict(routes)

    def __getitem__(self, message_class: str) -> Route:
        return self._routes[message_class]

    def __iter__(self) -> Iterator[str]:
        return iter(self._routes)

    def __len__(self) -> int:
        return len(self._routes)

    def resolve(self, message_class: str) -> Route | None:
        """Return the route for ``message_class`` or ``None`` to skip the item."""
        return self._routes.get(message_class)

    @classmethod
    def from_config(cls, config: RoutingConfig) -> RouteTable:
        """Build a table, rejecting routes that point at unknown templates."""
        routes: dict[str, Route] = {}
        for index, entry in enumerate(config.routes):
            template = config.templates.get(entry.template)
            if template is None:
                raise ConfigurationError(
                    f"Route #{index} ({entry.message_class}) references "
                    f"unknown template '{entry.template}'"
                )
            if entry.message_class in routes:
                LOGGER.warning(
                    "Duplicate route for message class %s ignored; first definition wins",
                    entry.message_class,
                )
                continue
            routes[entry.message_class] = Route(
                message_class=entry.message_class,
                use_date=template.use_date,
                use_sender=template.use_sender,
                static_suffix=template.static_suffix,
                file_extension=template.file_extension,
                apply_permissions=entry.apply_permissions,
                action=entry.action,
                write_to_sink=entry.write_to_sink,
                template=entry.template,
            )
        return cls(routes)

    @classmethod
    def from_dict(cls, payload: Any) -> RouteTable:
        try:
            config = RoutingConfig.model_validate(payload)
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid routing configuration: {exc}") from exc
        return cls.from_config(config)


def load_route_table(path: Path | str) -> RouteTable:
    """Load and validate the routing table stored at ``path``."""
    route_path = Path(path)
    try:
        payload = json.loads(route_path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise ConfigurationError(f"Routing file not found: {route_path}") from exc
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigurationError(f"Unable to read routing file {route_path}: {exc}") from exc
    table = RouteTable.from_dict(payload)
    LOGGER.info("Loaded %s route(s) from %s", len(table), route_path)
    return table


__all__ = [
    "RouteConfig",
    "RouteTable",
    "RoutingConfig",
    "TemplateConfig",
    "load_route_table",
]
