"""
FastAPI application factory for the Astral Sandbox API.
"""

import os
from contextlib import asynccontextmanager
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from astral.api.routers import simulation, world
from astral.core.config import SimulationConfig
from astral.core.simulation import Simulation

# Load .env from the project root first, then CWD
_project_root = Path(__file__).resolve().parents[3]  # src/astral/api/app.py → project root
load_dotenv(_project_root / ".env")
load_dotenv(Path.cwd() / ".env")


@asynccontextmanager
async def _lifespan(application: FastAPI):
    yield
    application.state.simulation.close()


def create_app(config: SimulationConfig | None = None, simulation_obj: Simulation | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Without arguments the simulation is configured from ``ASTRAL_*``
    environment variables.
    """
    application = FastAPI(
        title="Astral Sandbox API",
        description="REST API for the Astral probe simulation engine",
        version="0.1.0",
        lifespan=_lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    if simulation_obj is None:
        config = config or SimulationConfig.from_env()
        if config.db_path:
            os.makedirs(os.path.dirname(config.db_path) or ".", exist_ok=True)
        simulation_obj = Simulation(config)
    application.state.simulation = simulation_obj

    application.include_router(simulation.router, prefix="/api/simulation", tags=["simulation"])
    application.include_router(world.router, prefix="/api", tags=["world"])

    @application.get("/api/health")
    def health_check():
        return {"status": "ok"}

    return application
