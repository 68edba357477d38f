from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

from core.logger import logger
from core.responses import error_response

HTTP_MESSAGES = {
    404: "Recurso não encontrado",
    405: "Método não permitido",
}


def _validation_message(exc: RequestValidationError) -> str:
    """Primeiro erro de validação em formato legível: 'campo: motivo'"""
    errors = exc.errors()
    if not errors:
        return "Dados inválidos"
    first = errors[0]
    loc = [str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path")]
    field = ".".join(loc)
    if first.get("type") in ("missing", "value_error.missing"):
        return f"Campo obrigatório: {field}" if field else "Corpo da requisição é obrigatório"
    msg = first.get("msg", "valor inválido")
    return f"{field}: {msg}" if field else msg


def add_exception_handlers(app):
    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        detail = exc.detail
        if not isinstance(detail, str) or detail in ("Not Found", "Method Not Allowed"):
            detail = HTTP_MESSAGES.get(exc.status_code, str(detail))
        return error_response(detail, status_code=exc.status_code, headers=getattr(exc, "headers", None))

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return error_response(_validation_message(exc), status_code=status.HTTP_400_BAD_REQUEST)

    @app.exception_handler(RateLimitExceeded)
    async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
        logger.warning(f"🚦 Rate limit excedido: {request.client.host if request.client else '-'} {request.url.path}")
        return error_response("Muitas requisições. Tente novamente em instantes.", status_code=status.HTTP_429_TOO_MANY_REQUESTS)

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.exception(f"❌ Erro não tratado em {request.method} {request.url.path}: {exc}")
        return error_response("Erro interno do servidor", status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)
