from fastapi import HTTPException

from kakeibo.services.exceptions import KakeiboServiceError


def to_http_error(exc: KakeiboServiceError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=exc.reason)
