import logging
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse
from pydantic import BaseModel, ConfigDict, Field

from timetable_config import AppConfig, configure_logging
from timetable_errors import (
    InvalidPeriodRange,
    InvalidTimeFormat,
    PersistenceFailure,
    RecognizerEmpty,
    RecognizerError,
    RecordNotFound,
)
from timetable_recognizer import TimetableRecognizer
from timetable_render import render_interactive, render_printable
from timetable_schema import IngestResult, Period, PeriodUpdate, Subject, SubjectCreate
from timetable_service import TimetableService
from timetable_store import InMemoryStore, JsonFileStore, TimetableStore

logger = logging.getLogger(__name__)


class PeriodInput(BaseModel):
    model_config = ConfigDict(extra="forbid")

    subject_id: str
    day_of_week: int = Field(ge=0, le=6)
    start_time: str
    end_time: str
    location: Optional[str] = None
    teacher: Optional[str] = None
    notes: Optional[str] = None


class ImportRequest(BaseModel):
    periods: List[Dict[str, Any]]


class ImageImportRequest(BaseModel):
    image_base64: str
    additional_context: Optional[str] = None
    mime_type: str = "image/jpeg"


def _http_error(e: Exception) -> HTTPException:
    if isinstance(e, RecordNotFound):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, (InvalidTimeFormat, InvalidPeriodRange, RecognizerEmpty)):
        return HTTPException(status_code=400, detail=str(e))
    if isinstance(e, RecognizerError):
        return HTTPException(status_code=502, detail={"message": str(e), "upstream_status": e.status_code})
    if isinstance(e, PersistenceFailure):
        return HTTPException(status_code=409, detail=str(e))
    return HTTPException(status_code=500, detail=str(e))


def create_app(
    config: Optional[AppConfig] = None,
    store: Optional[TimetableStore] = None,
    recognizer: Optional[TimetableRecognizer] = None,
) -> FastAPI:
    config = config or AppConfig.from_env()
    if store is None:
        store = JsonFileStore(config.store_path) if config.store_path else InMemoryStore()
    if recognizer is None and config.recognizer.api_key:
        recognizer = TimetableRecognizer(config.recognizer)

    app = FastAPI(title="Timetable import & grid")
    app.state.config = config
    app.state.store = store
    app.state.recognizer = recognizer

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    def get_service(user_id: str, request: Request) -> TimetableService:
        return TimetableService(request.app.state.store, user_id, recognizer=request.app.state.recognizer)

    # the store writes files, so these handlers are plain functions run in the threadpool
    @app.get("/users/{user_id}/subjects", response_model=List[Subject])
    def list_subjects(active_only: bool = False, svc: TimetableService = Depends(get_service)):
        return svc.list_subjects(active_only=active_only)

    @app.post("/users/{user_id}/subjects", response_model=Subject, status_code=201)
    def create_subject(data: SubjectCreate, svc: TimetableService = Depends(get_service)):
        try:
            return svc.add_subject(data)
        except PersistenceFailure as e:
            raise _http_error(e) from e

    @app.delete("/users/{user_id}/subjects/{subject_id}", status_code=204)
    def delete_subject(subject_id: str, svc: TimetableService = Depends(get_service)):
        try:
            svc.delete_subject(subject_id)
        except PersistenceFailure as e:
            raise _http_error(e) from e

    @app.get("/users/{user_id}/periods", response_model=List[Period])
    def list_periods(day: Optional[int] = None, svc: TimetableService = Depends(get_service)):
        if day is None:
            return svc.store.list_periods(svc.user_id)
        return svc.periods_for_day(day)

    @app.post("/users/{user_id}/periods", response_model=Period, status_code=201)
    def create_period(data: PeriodInput, svc: TimetableService = Depends(get_service)):
        try:
            return svc.add_period(**data.model_dump())
        except (InvalidTimeFormat, InvalidPeriodRange, PersistenceFailure) as e:
            raise _http_error(e) from e

    @app.patch("/users/{user_id}/periods/{period_id}", response_model=Period)
    def update_period(period_id: str, changes: PeriodUpdate, svc: TimetableService = Depends(get_service)):
        try:
            return svc.update_period(period_id, changes)
        except (InvalidPeriodRange, PersistenceFailure) as e:
            raise _http_error(e) from e

    @app.delete("/users/{user_id}/periods/{period_id}", status_code=204)
    def delete_period(period_id: str, svc: TimetableService = Depends(get_service)):
        try:
            svc.delete_period(period_id)
        except PersistenceFailure as e:
            raise _http_error(e) from e

    @app.delete("/users/{user_id}/periods")
    def clear_timetable(svc: TimetableService = Depends(get_service)):
        return {"deleted": svc.clear_timetable()}

    @app.post("/users/{user_id}/timetable/import", response_model=IngestResult)
    def import_periods(request: ImportRequest, svc: TimetableService = Depends(get_service)):
        try:
            return svc.ingest_timetable_image(request.periods)
        except RecognizerEmpty as e:
            raise _http_error(e) from e

    @app.post("/users/{user_id}/timetable/import-image", response_model=IngestResult)
    async def import_image(request: ImageImportRequest, svc: TimetableService = Depends(get_service)):
        try:
            # the recognizer call blocks on the network
            return await run_in_threadpool(
                svc.import_image, request.image_base64, request.additional_context, request.mime_type
            )
        except (RecognizerEmpty, RecognizerError) as e:
            raise _http_error(e) from e

    @app.get("/users/{user_id}/timetable/layout")
    def get_layout(svc: TimetableService = Depends(get_service)):
        grid = svc.get_weekly_layout()
        return {"layout": grid.model_dump(), "rows": render_interactive(grid)}

    @app.get("/users/{user_id}/timetable/print", response_class=HTMLResponse)
    def print_timetable(title: str = "Class Timetable", svc: TimetableService = Depends(get_service)):
        return HTMLResponse(render_printable(svc.get_weekly_layout(), title=title))

    return app


_config = AppConfig.from_env()
configure_logging(_config.log_level)
app = create_app(_config)
