from typing import Any, Optional

from fastapi import status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse


def success_response(
    data: Optional[Any] = None,
    message: Optional[str] = None,
    status_code: int = status.HTTP_200_OK,
) -> JSONResponse:
    """
    Envelope de sucesso: {"success": true, "message"?, "data"?}.
    message e data só aparecem quando informados.
    """
    content = {"success": True}
    if message:
        content["message"] = message
    if data is not None:
        content["data"] = jsonable_encoder(data)
    return JSONResponse(status_code=status_code, content=content)


def error_response(error: str, status_code: int = status.HTTP_400_BAD_REQUEST, headers: Optional[dict] = None) -> JSONResponse:
    """Envelope de erro: {"success": false, "error": "..."}"""
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": error},
        headers=headers,
    )
