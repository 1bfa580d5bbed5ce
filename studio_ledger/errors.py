"""
Ledger error taxonomy.

ValidationError and NotFoundError keep ValueError/LookupError as bases so
callers written against the built-in exceptions still catch them.
"""


class LedgerError(Exception):
    """Base class for all ledger errors"""


class ValidationError(LedgerError, ValueError):
    """Rejected input: non-positive amount, missing reference, unknown kind or type"""


class NotFoundError(LedgerError, LookupError):
    """An entity, booking or purchase id does not resolve"""

    def __init__(self, resource: str, resource_id: str):
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(f"{resource.capitalize()} {resource_id} not found")


class ConsistencyError(LedgerError, RuntimeError):
    """A balance update and its matching record could not be kept together"""
