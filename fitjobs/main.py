# -*- coding: utf-8 -*-
"""
FitAI 生成任务服务

Local HTTP/WebSocket surface over the generation job orchestrators.
"""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import settings
from .jobs.api import registry, router as generation_router

app = FastAPI(
    title="FitAI Generation Jobs",
    description="Submit diet/workout plan generation and follow the job until it finishes.",
    version="1.0.0",
    docs_url="/api/docs",
    openapi_url="/api/openapi.json",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(generation_router)


@app.get("/api/health")
def health() -> dict:
    return {"status": "ok", "workers_base_url": settings.workers_base_url}


@app.on_event("shutdown")
async def _shutdown_generation() -> None:
    await registry.aclose()
