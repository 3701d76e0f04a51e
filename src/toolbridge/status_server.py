"""HTTP status surface for a running tool bridge.

Configuration UIs read ``/tools`` to build their tool checklist: ``available``
lists every tool any server offered, ``registered`` the ones that passed the
``active_tools`` filter.
"""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from .runtime import ToolBridge

log = logging.getLogger(__name__)


def create_app(bridge: ToolBridge, *, manage_lifecycle: bool = True) -> FastAPI:
    @asynccontextmanager
    async def lifespan(application: FastAPI):
        if manage_lifecycle:
            await bridge.start()
        try:
            yield
        finally:
            if manage_lifecycle:
                await bridge.stop()

    app = FastAPI(title="toolbridge", lifespan=lifespan)
    app.state.bridge = bridge

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        log.error("Unhandled error [%s %s]: %s", request.method, request.url.path, exc, exc_info=True)
        return JSONResponse(status_code=500, content={"error": str(exc)})

    @app.get("/health")
    async def health() -> dict:
        return {
            "status": "ok" if bridge.started else "starting",
            "connected": len(bridge.manager.connections),
            "configured": len(bridge.config.servers),
        }

    @app.get("/tools")
    async def tools() -> dict:
        return {
            "available": bridge.manager.available_tools,
            "registered": bridge.manager.registered_tools,
        }

    @app.get("/tools/{name}/schema")
    async def tool_schema(name: str) -> dict:
        action = _lookup(bridge, name)
        return {"name": action.name, "description": action.description, "schema": action.json_schema()}

    @app.post("/tools/{name}/call")
    async def call_tool(name: str, params: dict[str, Any] | None = None) -> dict:
        _lookup(bridge, name)
        result = await bridge.registry.invoke(name, params or {})
        return result.to_dict()

    @app.get("/servers")
    async def servers() -> dict:
        states = bridge.manager.states()
        return {
            "servers": [
                {
                    "name": name,
                    "state": states.get(name, "configured"),
                    "transport": "url" if server.url else "command",
                    "tools": list(bridge.manager.connections[name].tools) if name in bridge.manager.connections else [],
                }
                for name, server in bridge.config.servers.items()
            ]
        }

    @app.get("/binaries")
    async def binaries() -> dict:
        states = bridge.installer.states()
        return {
            "binaries": {
                name: {
                    "state": states.get(name, "absent"),
                    "path": str(installed.path) if (installed := bridge.binaries.get(name)) else None,
                    "version": installed.version if installed else None,
                }
                for name in ("uv", "bun")
            },
            "resolver": {"uv": bridge.resolver.paths.uv, "bun": bridge.resolver.paths.bun},
        }

    return app


def _lookup(bridge: ToolBridge, name: str):
    get = getattr(bridge.registry, "get", None)
    action = get(name) if get is not None else None
    if action is None:
        raise HTTPException(status_code=404, detail=f"Unknown tool: {name}")
    return action
