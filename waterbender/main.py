"""FastAPI application setup for the waterbender dashboard."""

from fastapi import FastAPI

from .api import router as api_router

app = FastAPI(title="Waterbender Dashboard")


@app.get("/")
def index():
    """Point clients at the versioned API."""
    return {"name": app.title, "api": "/v1"}


# API routes
app.include_router(api_router, prefix="/v1")
