"""Routing table components."""

from .routes import RouteTable, load_route_table

__all__ = ["RouteTable", "load_route_table"]
