from fastapi import HTTPException

from repricer.services.pricing.exceptions import ErrorKind, RepricerError

STATUS_BY_KIND = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.INACTIVE: 409,
    ErrorKind.VALIDATION_REJECTED: 422,
    ErrorKind.COST_MODEL: 422,
    ErrorKind.CONFIGURATION: 422,
    ErrorKind.TRANSIENT_INFRA: 503,
    ErrorKind.CONCURRENCY_CONFLICT: 409,
}


def to_http_exception(error: RepricerError) -> HTTPException:
    return HTTPException(status_code=STATUS_BY_KIND.get(error.kind, 500), detail=error.to_dict())
