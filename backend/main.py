from fastapi import FastAPI, Depends
from dotenv import load_dotenv

load_dotenv()
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.openapi.utils import get_openapi
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from database import Base, engine, get_db
from datetime import datetime
from exceptions import register_exception_handlers
from utils.timezone import now_local
import models  # noqa: F401 - registers every table on Base.metadata
import routers.inventory_items as inventory_items
import routers.bills as bills
import routers.clinic_config as clinic_config
import os
import logging


LOG_DIR = os.getenv("LOG_DIR", "logs")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

handlers = [logging.StreamHandler()]
if LOG_DIR:
    os.makedirs(LOG_DIR, exist_ok=True) # Create the log directory if it doesn't exist
    # Create a unique log file name based on current date/time
    current_time_str = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
    LOG_FILE = os.path.join(LOG_DIR, f"app_{current_time_str}.log")
    handlers.append(logging.FileHandler(LOG_FILE, mode='a'))

# Configure the root logger: console always, file when LOG_DIR is set
logging.basicConfig(level=LOG_LEVEL, format=LOG_FORMAT, handlers=handlers)

logger = logging.getLogger(__name__)
logger.info("Application starting up...")
# --- End Logging Configuration ---


# Create database tables
Base.metadata.create_all(bind=engine)


app = FastAPI()

allowed_origins_str = os.getenv(
    "CORS_ALLOWED_ORIGINS",
    "http://localhost:3000,http://127.0.0.1:3000"
)

# Split the string into a list, stripping any whitespace
allowed_origins = [origin.strip() for origin in allowed_origins_str.split(',') if origin.strip()]

# Enable CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)


def custom_openapi():
    if app.openapi_schema:
        return app.openapi_schema
    openapi_schema = get_openapi(
        title="Clinic Management API",
        version="1.0.0",
        description="Inventory ledger and billing API for the Clinic Management System",
        routes=app.routes,
    )
    openapi_schema.setdefault("components", {})["securitySchemes"] = {
        "BearerAuth": {
            "type": "http",
            "scheme": "bearer",
            "bearerFormat": "JWT",
        }
    }
    # Apply security globally to all endpoints
    openapi_schema["security"] = [{"BearerAuth": []}]
    app.openapi_schema = openapi_schema
    return app.openapi_schema

app.openapi = custom_openapi


app.include_router(inventory_items.router)
app.include_router(bills.router)
app.include_router(clinic_config.router)


@app.get("/health", include_in_schema=False)
def health(db: Session = Depends(get_db)):
    payload = {"timestamp": now_local().isoformat()}
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError:
        logger.exception("Health check could not reach the database")
        return JSONResponse(status_code=500, content={**payload, "status": "unhealthy", "database": "disconnected"})
    return {**payload, "status": "healthy", "database": "connected"}


@app.get("/")
async def root():
    return {"message": "Welcome to the Clinic Management API!"}
