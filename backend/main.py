"""
Gradebook — weighted grade composition service for the school portal.
FastAPI backend entry point.
"""

import logging
import os

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# Load environment before the routers read their settings.
load_dotenv()

from routes.gradebook import router as gradebook_router  # noqa: E402
from routes.summary import router as summary_router  # noqa: E402

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

SCHOOL_NAME = os.getenv("SCHOOL_NAME", "My School")
GRAPHQL_URL = os.getenv("GRAPHQL_URL", "http://localhost:4000/graphql")
# Comma-separated allowed origins, e.g. http://localhost:3000,https://portal.example.com
raw_origins = os.getenv("CORS_ORIGINS", "http://localhost:3000,http://localhost:5173")
ALLOWED_ORIGINS = [o.strip() for o in raw_origins.split(",") if o.strip()]

app = FastAPI(
    title="Gradebook API",
    description=(
        "Weighted grade composition for teachers: activities, weights, "
        "partial-completion scoring and qualitative grading."
    ),
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(gradebook_router, prefix="/api/gradebook", tags=["Gradebook"])
app.include_router(summary_router, prefix="/api/summary", tags=["Summary"])


@app.get("/api/health")
async def health_check():
    return {
        "status": "ok",
        "school_name": SCHOOL_NAME,
    }


@app.get("/api/config")
async def get_config():
    """Return server configuration to the frontend."""
    from core.gradebook import PERIODS
    from core.schema import FINAL_WEIGHT, MAX_REGULAR_COMPONENTS, WEIGHT_TOLERANCE

    return {
        "school_name": SCHOOL_NAME,
        "graphql_url": GRAPHQL_URL,
        "periods": list(PERIODS),
        "final_weight": FINAL_WEIGHT,
        "weight_tolerance": WEIGHT_TOLERANCE,
        "max_activities": MAX_REGULAR_COMPONENTS,
    }
