from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from cardflow.core.errors import CardflowError


async def cardflow_error_handler(request: Request, exc: CardflowError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code},
    )


def add_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(CardflowError, cardflow_error_handler)
