from typing import Optional
import asyncio
import contextlib
from datetime import datetime

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import structlog

from one_agent.application.api.route import agent
from one_agent.application.bootstrap import build_orchestrator
from one_agent.domain.orchestration.core.main_agent import AgentOrchestrator
from one_agent.infrastructure.config.settings import AgentSettings, load_settings
from one_agent.infrastructure.observability.logging import setup_logging, metrics

logger = structlog.get_logger(__name__)


def create_app(
    orchestrator: Optional[AgentOrchestrator] = None,
    settings: Optional[AgentSettings] = None
) -> FastAPI:
    """Build the HTTP app around an orchestrator (built from settings if not given)"""

    settings = settings or load_settings()
    if orchestrator is None:
        orchestrator = build_orchestrator(settings)

    app = FastAPI(title="One Agent")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.orchestrator = orchestrator
    app.state.settings = settings
    app.state.sweep_task = None
    app.include_router(agent.router)

    @app.on_event("startup")
    async def startup_event():
        """Start session expiry in the background"""
        app.state.sweep_task = asyncio.create_task(
            orchestrator.session_registry.sweep(settings.memory.sweep_interval)
        )
        logger.info("Agent server started", model=settings.inference.model)

    @app.on_event("shutdown")
    async def shutdown_event():
        task = app.state.sweep_task
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        await orchestrator.session_registry.shutdown()
        logger.info("Agent server shutdown")

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "active_sessions": len(orchestrator.session_registry),
            "metrics": metrics.get_metrics_summary(),
            "timestamp": datetime.utcnow().isoformat()
        }

    return app


def main():
    """Console entry point"""
    import uvicorn

    settings = load_settings()
    setup_logging(settings.logging.level, settings.logging.format, settings.logging.service_name)
    app = create_app(settings=settings)
    uvicorn.run(app, host=settings.server.host, port=settings.server.port)


if __name__ == "__main__":
    main()
