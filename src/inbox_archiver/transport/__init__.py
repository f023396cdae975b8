"""Mail source adapters.

The Outlook adapter depends on Windows COM and is imported explicitly from
``inbox_archiver.transport.outlook``.
"""

from .fingerprint import compute_fingerprint, fingerprint_record

__all__ = ["compute_fingerprint", "fingerprint_record"]
