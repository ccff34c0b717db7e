from fastapi import HTTPException

from provider_ledger.schemas.ledger import ErrorKind, LedgerResult

_STATUS_BY_KIND = {
    ErrorKind.VALIDATION: 422,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.PRECONDITION: 409,
    ErrorKind.BACKEND: 502,
}


def raise_for_result(result: LedgerResult) -> LedgerResult:
    """Translate a failed store result into the matching HTTP error."""
    if not result.success:
        status_code = _STATUS_BY_KIND.get(result.error_kind, 502)
        raise HTTPException(status_code=status_code, detail=result.error)
    return result
