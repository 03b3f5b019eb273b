"""
JSON error envelope shared by every route.

- request validation problems -> 400 {"error": "Invalid input", "details": [...]}
- HTTPException              -> {"error": <detail>} with its status code
"""
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from kindred.core.log import get_logger

logger = get_logger(__name__, "API")


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.info(f"invalid input path={request.url.path} errors={len(exc.errors())}")
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid input", "details": jsonable_encoder(exc.errors())},
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
