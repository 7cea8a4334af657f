"""
Error taxonomy for the catalog pipeline.

Refresh failures are reported as events by the sync controller; these
exceptions never leave a refresh cycle.
"""


class CatalogError(Exception):
    """Base class for catalog pipeline errors"""
    pass


class TransportError(CatalogError):
    """Network-level failure or an aborted transfer"""
    pass


class DecodeError(CatalogError):
    """Corrupt or truncated compressed stream"""
    pass


class MalformedCatalogError(CatalogError):
    """Root element mismatch or structurally invalid document"""
    pass


class NotFoundError(CatalogError):
    """Identifier does not belong to the current snapshot"""

    def __init__(self, identifier: int):
        super().__init__(f"Show {identifier} is not part of the current catalog")
        self.identifier = identifier
