"""
Donor CRM Backend
FastAPI app serving the donor CRM API and the WhatsApp assistant webhook.
"""
from contextlib import asynccontextmanager
import logging
import os

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

load_dotenv()

from background_job_executor import get_executor
from donor_crm.config import get_crm_settings
from donor_crm.routes import all_routers
from monitoring import init_monitoring

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables, start monitoring and the background job executor"""
    logger.info("Starting Donor CRM Backend...")
    init_monitoring()

    try:
        from database.database import init_db
        init_db()
    except SQLAlchemyError as e:
        logger.warning(f"Database initialization warning: {e}")

    executor = await get_executor()
    logger.info("Background job executor ready")

    yield

    logger.info("Shutting down...")
    await executor.shutdown()


app = FastAPI(title="Donor CRM Backend", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_crm_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

for router in all_routers:
    app.include_router(router)


@app.get("/health")
async def health():
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
