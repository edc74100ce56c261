from typing import Any

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse


def api_response(data: Any = None, message: str = "success", status_code: int = 200) -> JSONResponse:
    """Success envelope: ``{statusCode, success, data, message}``."""
    return JSONResponse(
        status_code=status_code,
        content={
            "statusCode": status_code,
            "success": True,
            "data": jsonable_encoder(data if data is not None else {}),
            "message": message,
        },
    )
