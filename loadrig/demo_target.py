"""
Demo target service with the endpoints the built-in scenarios exercise.

Run locally:
    loadrig-demo-target            # uvicorn on 0.0.0.0:8080

Simulated delays come from the environment:
    SLOW_SECONDS    delay of /simulate/slow (default 2.0)
    USER_LOOKUP_MS  delay of /user/{id} (default 100)
"""

from __future__ import annotations

import asyncio
import logging
import os

from fastapi import FastAPI, HTTPException
from fastapi.responses import HTMLResponse
from pydantic import BaseModel
import uvicorn

logger = logging.getLogger(__name__)

SERVICE_NAME = "loadrig-demo-target"

INDEX_HTML = """
<h1>loadrig demo target</h1>
<ul>
    <li>GET /health - Health check</li>
    <li>POST /calculate/add - Add two numbers</li>
    <li>POST /calculate/divide - Divide two numbers (can error)</li>
    <li>GET /simulate/slow - Simulate slow request</li>
    <li>GET /simulate/error - Simulate error</li>
    <li>GET /user/{id} - Get user by ID</li>
</ul>
"""


class CalculateRequest(BaseModel):
    a: float
    b: float


class CalculateResponse(BaseModel):
    result: float
    operation: str


def create_app() -> FastAPI:
    app = FastAPI(title=SERVICE_NAME)

    @app.get("/", response_class=HTMLResponse)
    async def index() -> str:
        return INDEX_HTML

    @app.get("/health")
    async def health() -> dict:
        return {"status": "healthy", "service": SERVICE_NAME}

    @app.post("/calculate/add", response_model=CalculateResponse)
    async def add(payload: CalculateRequest) -> CalculateResponse:
        return CalculateResponse(result=payload.a + payload.b, operation="addition")

    @app.post("/calculate/divide", response_model=CalculateResponse)
    async def divide(payload: CalculateRequest) -> CalculateResponse:
        if payload.b == 0:
            logger.error("Division by zero attempted")
            raise HTTPException(status_code=400, detail="Cannot divide by zero")
        return CalculateResponse(result=payload.a / payload.b, operation="division")

    @app.get("/simulate/slow")
    async def slow() -> dict:
        delay = float(os.getenv("SLOW_SECONDS", "2.0"))
        await asyncio.sleep(delay)
        return {"message": "Slow operation completed", "duration_seconds": delay}

    @app.get("/simulate/error")
    async def error() -> None:
        logger.error("Simulating error condition")
        raise HTTPException(status_code=500, detail="Simulated error occurred")

    @app.get("/user/{user_id}")
    async def user(user_id: int) -> dict:
        await asyncio.sleep(float(os.getenv("USER_LOOKUP_MS", "100")) / 1000.0)
        return {
            "id": user_id,
            "name": f"User {user_id}",
            "email": f"user{user_id}@example.com",
        }

    return app


app = create_app()


def main() -> None:
    uvicorn.run(
        "loadrig.demo_target:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8080")),
        log_level="info",
    )


if __name__ == "__main__":
    main()
