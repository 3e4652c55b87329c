"""
FastAPI application and endpoints for relaygate
"""

from datetime import datetime, timezone

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse

from .. import __version__
from ..models.schemas import GatewayResult, SubmitRequest
from ..utils.transaction_logger import get_transaction_logger
from .lifespan import lifespan, get_gateway


def create_app() -> FastAPI:
    """Create and configure the FastAPI application"""
    app = FastAPI(
        title="relaygate",
        description="Resilient multi-provider LLM gateway with key rotation and model failover",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    def require_gateway():
        gateway = get_gateway()
        if gateway is None:
            raise HTTPException(status_code=503, detail="Gateway not initialized")
        return gateway

    def require_provider(name: str):
        gateway = require_gateway()
        if name not in gateway.providers:
            raise HTTPException(status_code=404, detail=f"Provider not found: {name}")
        return gateway

    # =============================================================================
    # REQUEST ENDPOINTS
    # =============================================================================

    def ndjson_stream(gateway, request: SubmitRequest) -> StreamingResponse:
        async def events():
            async for event in gateway.stream(request.payload, request.resource_key, request.options):
                yield event.model_dump_json(exclude_none=True) + "\n"

        return StreamingResponse(events(), media_type="application/x-ndjson")

    @app.post("/llm/submit", response_model=GatewayResult)
    async def submit(request: SubmitRequest):
        """Resolve a request with key rotation and model failover - WAITS FOR RESPONSE

        A payload with stream=true is answered like /llm/stream.
        """
        gateway = require_gateway()
        if request.payload.stream:
            return ndjson_stream(gateway, request)
        return await gateway.submit(request.payload, request.resource_key, request.options)

    @app.post("/llm/stream")
    async def stream(request: SubmitRequest):
        """Stream a request as newline-delimited JSON events"""
        return ndjson_stream(require_gateway(), request)

    # =============================================================================
    # STATUS AND MONITORING ENDPOINTS
    # =============================================================================

    @app.get("/health")
    async def health_check():
        """System health check"""
        gateway = get_gateway()
        return {
            "status": "healthy" if gateway is not None else "starting",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "version": __version__,
            "providers": list(gateway.providers) if gateway is not None else []
        }

    @app.get("/providers")
    async def get_providers():
        """Key pools, model rosters and in-flight resources"""
        return require_gateway().status()

    @app.get("/providers/{name}/health")
    async def provider_health(name: str):
        """Send a small prompt through the provider's full retry machinery"""
        gateway = require_provider(name)
        return await gateway.health_check(name)

    @app.post("/providers/{name}/roster/reset")
    async def reset_roster(name: str):
        """Restore the configured model order"""
        gateway = require_provider(name)
        gateway.reset_rosters(name)
        return {"provider": name, "models": gateway.get_provider(name).roster.order()}

    @app.get("/stats")
    async def get_stats():
        """Summary of the transaction log"""
        transaction_logger = get_transaction_logger()
        if transaction_logger is None:
            return {"enabled": False}
        return await transaction_logger.get_stats_summary()

    return app
