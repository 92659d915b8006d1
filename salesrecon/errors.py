"""
Reconciliation Errors

Every operator-facing failure carries a Notice so the serving layer can
surface it as a toast without re-deriving the message.
"""

from typing import List, Optional

from salesrecon.domain.models import Notice


class ReconciliationError(Exception):
    """Base error of the import and reporting engines"""

    title = "Import failed"
    status_code = 400

    def __init__(self, message: str, title: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if title:
            self.title = title

    @property
    def notice(self) -> Notice:
        return Notice(level="error", title=self.title, message=self.message)


class ExtractionFailedError(ReconciliationError):
    """The extraction collaborator produced nothing usable or raised"""
    title = "Analysis failed"
    status_code = 422


class EmptyAggregationError(ExtractionFailedError):
    """No row survived aggregation"""


class IncompleteMappingError(ReconciliationError):
    """Confirmation attempted while unrecognized keys lack a resolution"""
    title = "Mapping incomplete"
    status_code = 409

    def __init__(self, missing_keys: List[str]):
        self.missing_keys = list(missing_keys)
        super().__init__(
            f"{len(self.missing_keys)} unrecognized item(s) still need a resolution: "
            + ", ".join(self.missing_keys)
        )


class ResolutionError(ReconciliationError):
    """Resolution does not apply to the session"""
    title = "Invalid resolution"
    status_code = 422


class UnknownProductError(ResolutionError):
    """MapTo names a product that is not in the catalog snapshot"""

    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"Product '{product_id}' does not exist in the catalog")


class SessionNotFoundError(ReconciliationError):
    """Import session expired, was cancelled, or was already confirmed"""
    title = "No import to review"
    status_code = 404

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Import session '{session_id}' not found. Start again from the import page.")


class StoreWriteError(ReconciliationError):
    """A store write failed during materialization"""
    title = "Import failed"
    status_code = 502
