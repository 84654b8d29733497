"""
GPI Document Hub - Folder Conversion Server

Entry point for the folder-to-library conversion service. Routes live in
/routes/, conversion logic in services/library_conversion.
"""

from fastapi import FastAPI, APIRouter
from fastapi.middleware.cors import CORSMiddleware
from motor.motor_asyncio import AsyncIOMotorClient
from contextlib import asynccontextmanager
from dotenv import load_dotenv
from pathlib import Path
import os
import logging

ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

from routes import library_conversion
from services.library_conversion import HttpMembershipResolver, ensure_conversion_indexes

# Configure logging
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)

# ==================== DATABASE ====================
MONGO_URL = os.environ.get("MONGO_URL", "mongodb://localhost:27017")
DB_NAME = os.environ.get("DB_NAME", "gpi_hub")

db = None
mongo_client = None


# ==================== LIFESPAN ====================
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown."""
    global db, mongo_client

    logger.info("Starting folder conversion service...")

    mongo_client = AsyncIOMotorClient(MONGO_URL)
    db = mongo_client[DB_NAME]

    library_conversion.set_dependencies(db, HttpMembershipResolver())

    await ensure_conversion_indexes(db)

    logger.info("Folder conversion service started")

    yield

    logger.info("Shutting down folder conversion service...")
    if mongo_client:
        mongo_client.close()


# ==================== APP SETUP ====================
app = FastAPI(
    title="GPI Document Hub - Folder Conversion",
    description="Converts legacy folders into libraries and migrates their documents",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

api_router = APIRouter(prefix="/api")
api_router.include_router(library_conversion.router)
app.include_router(api_router)


@app.get("/")
async def root():
    return {
        "service": "GPI Document Hub - Folder Conversion",
        "version": "1.0.0",
        "status": "running"
    }


@app.get("/api/health")
async def health():
    return {
        "status": "healthy",
        "service": "folder-conversion"
    }
