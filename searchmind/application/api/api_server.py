from contextlib import asynccontextmanager
from typing import Optional
import asyncio

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from searchmind.application.api.route import agent as agent_routes
from searchmind.application.container import Services, build_services
from searchmind.application.websocket import ws_server
from searchmind.infrastructure.config.settings import get_settings
from searchmind.infrastructure.observability.logging import setup_logging

logger = structlog.get_logger(__name__)


def create_app(services: Optional[Services] = None) -> FastAPI:
    """Build the FastAPI app; services are built from settings when not supplied"""
    settings = services.settings if services else get_settings()
    setup_logging(settings.log_level, settings.log_format, settings.service_name)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.services = app.state.services or build_services(settings)
        running = app.state.services

        health_task = asyncio.create_task(running.connection_manager.health_check())
        if settings.sleep_cycle_enabled:
            running.scheduler.start()
        logger.info("Agent server started", agents=[kind.value for kind in running.registry.kinds()])

        try:
            yield
        finally:
            await running.scheduler.stop()
            health_task.cancel()
            await asyncio.gather(health_task, return_exceptions=True)
            await running.connection_manager.close_all()
            await running.context_manager.drain()
            await running.search_console.aclose()
            logger.info("Agent server shutdown")

    app = FastAPI(title="SearchMind Agent Server", lifespan=lifespan)
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(agent_routes.router)
    app.include_router(ws_server.router)
    return app


def main():
    import uvicorn
    uvicorn.run(create_app(), host="0.0.0.0", port=8000)


if __name__ == "__main__":
    main()
