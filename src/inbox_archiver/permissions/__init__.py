"""File permission reconciliation."""

from .reconciler import PermissionReconciler, account_name

__all__ = ["PermissionReconciler", "account_name"]
