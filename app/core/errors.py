from fastapi import HTTPException


class PortalError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(PortalError):
    status_code = 404


class ForbiddenError(PortalError):
    status_code = 403


class ValidationError(PortalError):
    status_code = 400


class UpstreamError(PortalError):
    """External service (Gemini, SMTP) unreachable or returned garbage"""
    status_code = 502


def to_http(error: PortalError) -> HTTPException:
    return HTTPException(status_code=error.status_code, detail=error.message)
