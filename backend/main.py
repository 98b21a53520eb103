from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from dotenv import load_dotenv

load_dotenv()
from fastapi.middleware.cors import CORSMiddleware
from database import Base, engine
from datetime import datetime
from exceptions import PurchaseOrderError
import models  # noqa: F401  registers every table on Base.metadata
import routers.purchase_orders as purchase_orders
import routers.stock_movements as stock_movements
import routers.app_config as app_config
import os
import logging


LOG_DIR = os.getenv("LOG_DIR", "logs")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def configure_logging():
    os.makedirs(LOG_DIR, exist_ok=True) # Create the log directory if it doesn't exist

    # Create a unique log file name based on current date/time
    current_time_str = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
    log_file = os.path.join(LOG_DIR, f"app_{current_time_str}.log")

    # Configure the root logger
    logging.basicConfig(
        level=LOG_LEVEL,
        format=LOG_FORMAT,
        filename=log_file, # Log to a file
        filemode='a' # Append to the file if it exists
    )

    # Also output logs to the console
    console_handler = logging.StreamHandler()
    console_handler.setLevel(LOG_LEVEL)
    console_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logging.getLogger().addHandler(console_handler) # Add to the root logger


configure_logging()

# Get a logger for this module (app.main)
logger = logging.getLogger(__name__)
logger.info("Application starting up...")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Create database tables for fresh installs; Alembic manages upgrades
    Base.metadata.create_all(bind=engine)
    yield


app = FastAPI(title="Retail Back Office API", version="1.0.0", lifespan=lifespan)


allowed_origins_str = os.getenv(
    "CORS_ALLOWED_ORIGINS",
    "http://localhost:5173,http://127.0.0.1:5173"
)

# Split the string into a list, stripping any whitespace
allowed_origins = [origin.strip() for origin in allowed_origins_str.split(',')]

# Enable CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(PurchaseOrderError)
async def purchase_order_exception_handler(request: Request, exc: PurchaseOrderError):
    # The UI shows the message verbatim
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


app.include_router(purchase_orders.router)
app.include_router(stock_movements.router)
app.include_router(app_config.router)

@app.get("/")
async def test_route():
    return {"message": "Retail Back Office API is running"}
