from __future__ import annotations

import json
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import ValidationError

from .dashboard import RecipeDashboard
from .errors import DeleteError, JobAlreadyRunningError, RefreshError, RequestValidationError, SubmissionError
from .models import (
    CatalogEntry,
    ConfigMetadata,
    FilterState,
    JobSnapshot,
    Notice,
    SortField,
    SortOrder,
    Stats,
    parse_generation_request,
)


def create_app(dashboard: Optional[RecipeDashboard] = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        app.state.dashboard = dashboard or RecipeDashboard()
        await app.state.dashboard.start()
        try:
            yield
        finally:
            await app.state.dashboard.close()

    app = FastAPI(title="Recipe Admin API", version="0.1.0", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    _register_routes(app)
    return app


def get_dashboard(request: Request) -> RecipeDashboard:
    return request.app.state.dashboard


def _register_routes(app: FastAPI) -> None:
    @app.get("/healthz")
    def healthcheck() -> Dict[str, str]:
        return {"status": "ok"}

    @app.get("/config/defaults", response_model=ConfigMetadata)
    def get_config_defaults(dashboard: RecipeDashboard = Depends(get_dashboard)) -> ConfigMetadata:
        return dashboard.config_metadata()

    @app.post("/generations", response_model=JobSnapshot, status_code=202)
    async def submit_generation(request: Request, dashboard: RecipeDashboard = Depends(get_dashboard)) -> JobSnapshot:
        try:
            payload: Any = await request.json()
        except json.JSONDecodeError as exc:  # noqa: BLE001
            raise HTTPException(status_code=400, detail="Invalid JSON payload") from exc

        try:
            generation_request = parse_generation_request(payload)
        except ValidationError as exc:
            raise HTTPException(status_code=422, detail=exc.errors(include_url=False, include_context=False)) from exc

        try:
            return await dashboard.orchestrator.submit(generation_request)
        except RequestValidationError as exc:
            raise HTTPException(status_code=400, detail={"field": exc.field, "message": str(exc)}) from exc
        except JobAlreadyRunningError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        except SubmissionError as exc:
            raise HTTPException(status_code=502, detail=str(exc)) from exc

    @app.get("/generations/current", response_model=JobSnapshot)
    def current_generation(dashboard: RecipeDashboard = Depends(get_dashboard)) -> JobSnapshot:
        return dashboard.orchestrator.snapshot()

    @app.delete("/generations/current", response_model=JobSnapshot)
    def cancel_generation(dashboard: RecipeDashboard = Depends(get_dashboard)) -> JobSnapshot:
        dashboard.orchestrator.cancel_active_job()
        return dashboard.orchestrator.snapshot()

    @app.post("/generations/current/acknowledge", response_model=JobSnapshot)
    def acknowledge_generation_error(dashboard: RecipeDashboard = Depends(get_dashboard)) -> JobSnapshot:
        return dashboard.orchestrator.acknowledge_error()

    @app.get("/catalog", response_model=list[CatalogEntry])
    def list_catalog(
        search: str = "",
        sort_by: SortField = SortField.CREATED_AT,
        sort_order: SortOrder = SortOrder.DESC,
        dashboard: RecipeDashboard = Depends(get_dashboard),
    ) -> list[CatalogEntry]:
        return dashboard.catalog.view(FilterState(search=search, sort_by=sort_by, sort_order=sort_order))

    @app.post("/catalog/refresh", response_model=Stats)
    async def refresh_catalog(dashboard: RecipeDashboard = Depends(get_dashboard)) -> Stats:
        try:
            await dashboard.catalog.refresh()
        except RefreshError as exc:
            dashboard.notices.report("refresh", str(exc))
            raise HTTPException(status_code=502, detail=str(exc)) from exc
        return dashboard.current_stats()

    @app.delete("/catalog/{entry_id}")
    async def delete_catalog_entry(entry_id: str, dashboard: RecipeDashboard = Depends(get_dashboard)) -> Dict[str, str]:
        if dashboard.catalog.get(entry_id) is None:
            raise HTTPException(status_code=404, detail="Catalog entry not found")
        try:
            await dashboard.catalog.delete(entry_id)
        except DeleteError as exc:
            dashboard.notices.report("delete", str(exc))
            raise HTTPException(status_code=502, detail=str(exc)) from exc
        return {"status": "deleted"}

    @app.get("/stats", response_model=Stats)
    def get_stats(dashboard: RecipeDashboard = Depends(get_dashboard)) -> Stats:
        return dashboard.current_stats()

    @app.get("/notice", response_model=Optional[Notice])
    def get_notice(dashboard: RecipeDashboard = Depends(get_dashboard)) -> Optional[Notice]:
        return dashboard.notices.current

    @app.delete("/notice")
    def dismiss_notice(dashboard: RecipeDashboard = Depends(get_dashboard)) -> Dict[str, str]:
        dashboard.notices.dismiss()
        return {"status": "dismissed"}


app = create_app()
