from contextlib import asynccontextmanager
from fastapi import FastAPI
import uvicorn
import logging

from batch_pricing.config import settings
from batch_pricing.database import db
from batch_pricing.api import purchase_orders

# Setup Logging
logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    db.connect()
    yield
    db.close()

app = FastAPI(
    title="Batch Pricing API",
    description="Propagates purchase order prices and additional costs to inventory batches",
    version="1.0.0",
    lifespan=lifespan
)

# Router Registration
app.include_router(purchase_orders.router)

# Health Check
@app.get("/health")
async def health_check():
    return {"status": "ok", "environment": settings.ENVIRONMENT}

if __name__ == "__main__":
    uvicorn.run("batch_pricing.main:app", host="0.0.0.0", port=8000, reload=True)
