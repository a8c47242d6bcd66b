# FastAPI application

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from utils.config import Config
from utils.logger import setup_logging
from utils.response import create_error_response
from api.middleware import setup_middleware

from api.auth import auth_router
from api.orders import orders_router
from api.payments import payments_router
from api.admin import admin_router
from core.errors import OrderError
from db.manager import DatabaseManager
from db.schema import create_tables
from db.supporting_operations import SupportingOperations

config = Config()

setup_logging(config.config)
logger = logging.getLogger(__name__)


def prepare_database():
    """Create the schema and seed default fee/store settings"""
    db_config = config.get_database_config()
    with DatabaseManager(db_config["path"], busy_timeout=db_config.get("busy_timeout_seconds", 5)) as db:
        create_tables(db)
        support_ops = SupportingOperations(db)
        if support_ops.seed_fee_config(config.get("fees", {})):
            logger.info("Seeded fee settings from config")
        if support_ops.seed_store_config(config.get("store", {})):
            logger.info("Seeded store settings from config")


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Bakery ordering API starting")
    logger.info(f"Environment: {config.env}")
    logger.info(f"Debug: {config.config['app']['debug']}")

    prepare_database()

    yield

    logger.info("Bakery ordering API shutting down")


app = FastAPI(
    title=config.config['app']['name'],
    version=config.config['app']['version'],
    description=config.config['app']['description'],
    debug=config.config['app']['debug'],
    lifespan=lifespan
)

setup_middleware(app, config.config)

app.include_router(auth_router)
app.include_router(orders_router)
app.include_router(payments_router)
app.include_router(admin_router)


@app.exception_handler(OrderError)
async def order_error_handler(request: Request, exc: OrderError):
    """Domain errors keep their status code and machine readable details"""
    if exc.status_code >= 500:
        logger.error(f"{exc.code} on {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content=create_error_response(exc.message, exc.to_dict())
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"field": ".".join(str(part) for part in error["loc"]), "message": error["msg"]}
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=422,
        content=create_error_response("Invalid request", {"code": "request_invalid", "errors": errors})
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content=create_error_response(exc.detail)
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception: {str(exc)}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content=create_error_response("Internal server error")
    )


@app.get("/")
async def root():
    return {
        "message": "Bakery ordering API is running",
        "version": config.config['app']['version'],
        "status": "healthy"
    }


@app.get("/health")
async def health_check():
    return {
        "status": "healthy",
        "version": config.config['app']['version'],
        "environment": config.env
    }


@app.get("/api/info")
async def api_info():
    return {
        "name": config.config['app']['name'],
        "version": config.config['app']['version'],
        "description": config.config['app']['description'],
        "environment": config.env,
        "endpoints": {
            "auth": "/api/auth",
            "orders": "/api/orders",
            "payments": "/api/payments",
            "admin": "/api/admin"
        }
    }


if __name__ == "__main__":
    import uvicorn

    server_config = config.config['server']

    uvicorn.run(
        "api.main:app",
        host=server_config.get('host', '127.0.0.1'),
        port=server_config.get('port', 8000),
        reload=server_config.get('reload', False),
        workers=1 if server_config.get('reload', False) else server_config.get('workers', 1),
        log_level="debug" if config.config['app']['debug'] else "info"
    )
