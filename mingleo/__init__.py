# =============================================================================
# Mingleo Client Core - Dynamic Version Loading
# =============================================================================
"""
Mingleo - Messaging Client Core

Realtime synchronization and view-state reconciliation for a chat client
backed by a managed backend (database, auth, object storage, realtime).

Version is loaded from installed package metadata.
"""

from __future__ import annotations


def _get_version() -> str:
    """
    Get package version from installed metadata.

    Returns:
        Version string (e.g., "0.3.0")
    """
    try:
        from importlib.metadata import version, PackageNotFoundError
    except ImportError:
        return "0.0.0-unknown"

    try:
        return version("mingleo")
    except PackageNotFoundError:
        # Package not installed (running from a source checkout)
        return "0.0.0-unknown"


__version__: str = _get_version()
__description__: str = "Mingleo - realtime chat client core"
__author__: str = "Mingleo Team"

# =============================================================================
# EXPORTS
# =============================================================================
__all__ = [
    "__version__",
    "__description__",
    "__author__",
]
