import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI

from thriftverse.presentation.api import router

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("ThriftVerse payments service starting")
    yield
    logger.info("ThriftVerse payments service stopping")


app = FastAPI(
    title="ThriftVerse Payments",
    description="Payment verification and order materialization for the ThriftVerse storefront",
    version="1.0.0",
    lifespan=lifespan
)

app.include_router(router, prefix="/api")


@app.get("/")
async def root():
    return {"message": "ThriftVerse payments service is running"}


@app.get("/health")
async def health():
    return {"status": "healthy"}
