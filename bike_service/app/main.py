import logging
import os
import signal
import time
from datetime import datetime, timezone
from typing import Any, List

import uvicorn
from fastapi import APIRouter, Body, Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse

from . import schemas
from .codec import bike_codec
from .config import Settings
from .database import open_store
from .errors import (
    CodecError,
    InvalidTransitionError,
    NotFoundError,
    StoreError,
    StoreUnavailableError,
    ValidationError,
)
from .logging_config import setup_logging
from .reservation import ReservationStateMachine
from .store import BikeStore
from .validation import validate_bike, validate_filters

logger = logging.getLogger(__name__)


def terminate_process() -> None:
    """Просим uvicorn завершиться: со сломанным соединением не обслуживаем."""
    logger.critical("Store connection lost, terminating...")
    os.kill(os.getpid(), signal.SIGTERM)


# Асинхронная зависимость для получения хранилища
async def get_store(request: Request) -> BikeStore:
    return request.app.state.store


async def get_settings(request: Request) -> Settings:
    return request.app.state.settings


router = APIRouter(tags=["bikes"])


@router.post("", response_model=schemas.Bike)
async def create_bike(
        payload: Any = Body(None),
        store: BikeStore = Depends(get_store),
        settings: Settings = Depends(get_settings),
):
    bike = validate_bike(payload, "create", strict_numbers=settings.strict_numbers)
    bike_id = await store.create(bike)
    return {**bike, "id": bike_id, "available": True}


@router.get("", response_model=List[schemas.Bike])
async def list_available_bikes(request: Request, store: BikeStore = Depends(get_store)):
    filters = validate_filters(dict(request.query_params), bike_codec)
    return await store.find_available(filters)


@router.get("/{bike_id}", response_model=schemas.Bike)
async def read_bike(bike_id: int, store: BikeStore = Depends(get_store)):
    return await store.read(bike_id)


@router.put("/{bike_id}", response_model=schemas.Bike)
async def replace_bike(
        bike_id: int,
        payload: Any = Body(None),
        store: BikeStore = Depends(get_store),
        settings: Settings = Depends(get_settings),
):
    bike = validate_bike(payload, "update", strict_numbers=settings.strict_numbers)
    await store.replace(bike_id, bike)
    return await store.read(bike_id)


@router.delete("/{bike_id}", response_model=schemas.Message)
async def delete_bike(bike_id: int, store: BikeStore = Depends(get_store)):
    await store.delete(bike_id)
    return {"message": "Bike deleted successfully", "bike_id": bike_id}


@router.patch("/{bike_id}/reserve", response_model=schemas.Message)
async def reserve_bike(bike_id: int, store: BikeStore = Depends(get_store)):
    await ReservationStateMachine(store).reserve(bike_id)
    return {"message": "Bike reserved", "bike_id": bike_id}


@router.patch("/{bike_id}/clear", response_model=schemas.Message)
async def clear_bike(bike_id: int, store: BikeStore = Depends(get_store)):
    await ReservationStateMachine(store).clear(bike_id)
    return {"message": "Bike reservation cleared", "bike_id": bike_id}


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ValidationError)
    async def validation_error(request: Request, exc: ValidationError):
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"detail": "Validation failed", "errors": exc.as_list()},
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_error(request: Request, exc: RequestValidationError):
        errors = [
            {"field": ".".join(str(part) for part in error["loc"]), "reason": error["msg"]}
            for error in exc.errors()
        ]
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"detail": "Invalid request", "errors": errors},
        )

    @app.exception_handler(NotFoundError)
    async def not_found(request: Request, exc: NotFoundError):
        return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})

    @app.exception_handler(InvalidTransitionError)
    async def invalid_transition(request: Request, exc: InvalidTransitionError):
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": str(exc)})

    @app.exception_handler(StoreUnavailableError)
    async def store_unavailable(request: Request, exc: StoreUnavailableError):
        logger.critical(f"{request.method} {request.url.path}: {exc}")
        request.app.state.on_fatal()
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"detail": "Store unavailable"},
        )

    @app.exception_handler(StoreError)
    @app.exception_handler(CodecError)
    async def internal_error(request: Request, exc: Exception):
        logger.error(f"{request.method} {request.url.path}: {exc}", exc_info=exc)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": f"Internal error: {exc}"},
        )


def create_app(settings: Settings = None, store_factory=open_store) -> FastAPI:
    """Собирает приложение; ``store_factory(settings)`` открывает хранилище при старте."""
    settings = settings or Settings()
    setup_logging(settings.log_level)

    app = FastAPI(
        title="Bike Service",
        description="API for bike catalog and reservations",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json"
    )
    app.state.settings = settings
    app.state.on_fatal = terminate_process

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        elapsed = (time.perf_counter() - started) * 1000
        logger.info(f"{request.method} {request.url.path} {response.status_code} {elapsed:.3f} ms")
        return response

    register_exception_handlers(app)
    app.include_router(router, prefix="/resources")
    app.include_router(router, prefix="/api/bikes")

    # Открываем хранилище при старте приложения
    @app.on_event("startup")
    async def startup():
        app.state.store = await store_factory(settings)

    @app.on_event("shutdown")
    async def shutdown():
        store = getattr(app.state, "store", None)
        if store is not None:
            logger.info("Terminating...")
            await store.close()

    @app.get("/hello", response_class=PlainTextResponse)
    async def hello():
        return "hello!"

    @app.get("/health")
    async def health_check(store: BikeStore = Depends(get_store)):
        health_info = {
            "status": "healthy",
            "service": "bike",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        try:
            await store.ping()
            health_info["store"] = {"backend": store.name, "status": "connected"}
        except StoreUnavailableError:
            # обработчик вернёт 503 и остановит процесс
            raise
        except StoreError as e:
            health_info["store"] = {"backend": store.name, "status": "error", "error": str(e)}
            health_info["status"] = "unhealthy"
        return health_info

    return app


app = create_app()


def run() -> None:
    settings = app.state.settings
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
