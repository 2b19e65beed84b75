from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from analysis_backend.application import RegionalAnalysisService, build_analysis_service
from analysis_backend.core.config import AnalysisSettings, load_settings
from analysis_backend.core.logging_utils import configure_logging
from analysis_backend.routes import regional


def create_app(
    settings: AnalysisSettings | None = None,
    *,
    service: RegionalAnalysisService | None = None,
) -> FastAPI:
    settings = settings or load_settings()
    configure_logging(settings.log_level)
    service = service or build_analysis_service(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        service.start()
        try:
            yield
        finally:
            service.stop()

    app = FastAPI(title="Regional Analysis API", version="0.1.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.analysis = service

    origins = settings.cors_origins or ["http://localhost:3000", "http://127.0.0.1:3000"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(regional.router, prefix="/api")

    @app.get("/", include_in_schema=False)
    async def root() -> JSONResponse:
        """Provide a lightweight landing page for container checks."""
        return JSONResponse(
            {
                "message": "Regional Analysis API",
                "docs": "/docs",
                "health": "/api/regional",
                "offline": settings.offline,
            }
        )

    return app


app = create_app()
