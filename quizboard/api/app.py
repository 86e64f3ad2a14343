from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from quizboard.api.deps import ApiError
from quizboard.api.routes import router
from quizboard.models.api import ErrorResponse


def _error_response(status_code: int, error: str, code=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=error, code=code).model_dump(exclude_none=True),
    )


def create_app() -> FastAPI:
    app = FastAPI(title="Quizboard API")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ApiError)
    async def handle_api_error(request: Request, exc: ApiError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} -> {exc.status_code}: {exc.error}")
        else:
            logger.info(f"{request.method} {request.url.path} -> {exc.status_code}: {exc.error}")
        return _error_response(exc.status_code, exc.error, exc.code)

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        return _error_response(400, f"Invalid request: {exc.errors()[0].get('msg', 'bad input')}")

    app.include_router(router)

    @app.get("/")
    def root():
        return {"status": "online", "service": "quizboard"}

    return app


app = create_app()
