# backend/main.py
import logging

from fastapi import FastAPI, Depends, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from dotenv import load_dotenv

load_dotenv()

from config import settings
from database import get_db, init_db
from services import errors

# Routers
from routes.inventory import router as inventory_router
from routes.stock import router as stock_router
from routes.sales import router as sales_router

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Initialization
init_db()

app = FastAPI(title="Warehouse Stock API", version="1.0.0")

# CORS Configuration
origins = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
]
if settings.FRONTEND_URL and settings.FRONTEND_URL not in origins:
    origins.append(settings.FRONTEND_URL)

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Error family -> HTTP status, most specific first
ERROR_STATUS = (
    (errors.ValidationError, 400),
    (errors.NotFoundError, 404),
    (errors.StockRecordExistsError, 409),
    (errors.InsufficientStockError, 409),
    (errors.ConcurrencyConflictError, 409),
    (errors.StorageError, 503),
)


def status_for(exc: errors.InventoryError) -> int:
    for family, status_code in ERROR_STATUS:
        if isinstance(exc, family):
            return status_code
    return 400


@app.exception_handler(errors.InventoryError)
async def inventory_error_handler(request: Request, exc: errors.InventoryError):
    status_code = status_for(exc)
    if status_code >= 500:
        logger.error("%s %s failed: %s %s", request.method, request.url.path, exc.message, exc.context)
    return JSONResponse(
        status_code=status_code,
        content={
            "detail": exc.message,
            "error": type(exc).__name__,
            "context": exc.context,
            "retryable": exc.retryable,
        },
    )


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.exception("Database error on %s %s", request.method, request.url.path)
    storage_error = errors.StorageError()
    return JSONResponse(
        status_code=503,
        content={
            "detail": storage_error.message,
            "error": type(storage_error).__name__,
            "context": {},
            "retryable": False,
        },
    )


# Routers registration
app.include_router(inventory_router)
app.include_router(stock_router, prefix="/stock")
app.include_router(sales_router)


@app.get("/health")
def health_check(db: Session = Depends(get_db)):
    try:
        db.execute(text("SELECT 1"))
        db_status = "connected"
    except SQLAlchemyError as e:
        db_status = "unavailable"
        logger.warning("Health check database error: %s", e)
    return {"status": "healthy" if db_status == "connected" else "degraded", "database": db_status}


@app.get("/")
def read_root():
    return {"message": "Warehouse Stock API is running"}
