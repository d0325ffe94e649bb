"""FastAPI server exposing sheets over HTTP.

Routes are thin wrappers over the shared :class:`SheetService`.
Engine errors map to JSON bodies carrying a stable ``code``:

- ``InvalidReference``   -> 400 ``invalid_reference``
- ``UnsupportedCommand`` -> 400 ``unsupported_command``
- malformed command      -> 422 ``invalid_payload``
- unknown sheet          -> 404 ``sheet_not_found``
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from fastapi import APIRouter, Body, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel, ValidationError

from gridcalc.errors import InvalidReference, SheetNotFound, StorageError, UnsupportedCommand
from gridcalc.logging.events import set_project_dir
from gridcalc.service import SheetService

# The singleton service is set at startup by ``create_app()``.
_service: SheetService | None = None


def create_app(project_dir: Path) -> FastAPI:
    """Create the FastAPI application for a given project.

    Args:
        project_dir: Root of the gridcalc project.

    Returns:
        Configured FastAPI instance.
    """
    global _service
    project_dir = Path(project_dir).resolve()
    set_project_dir(project_dir)
    _service = SheetService.for_project(project_dir)

    from gridcalc import __version__

    app = FastAPI(title="gridcalc", version=__version__)
    app.include_router(_api_router())
    _register_error_handlers(app)
    return app


def _svc() -> SheetService:
    """Get the singleton service, raising if not initialised."""
    if _service is None:
        raise HTTPException(500, "Service not initialised")
    return _service


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------


def _error(status: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status,
        content={"ok": False, "code": code, "message": message},
    )


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(InvalidReference)
    async def invalid_reference(request: Request, exc: InvalidReference) -> JSONResponse:
        return _error(400, "invalid_reference", str(exc))

    @app.exception_handler(UnsupportedCommand)
    async def unsupported_command(request: Request, exc: UnsupportedCommand) -> JSONResponse:
        return _error(400, "unsupported_command", str(exc))

    @app.exception_handler(ValidationError)
    async def invalid_payload(request: Request, exc: ValidationError) -> JSONResponse:
        return _error(422, "invalid_payload", str(exc))

    @app.exception_handler(SheetNotFound)
    async def sheet_not_found(request: Request, exc: SheetNotFound) -> JSONResponse:
        return _error(404, "sheet_not_found", str(exc))

    @app.exception_handler(StorageError)
    async def storage_error(request: Request, exc: StorageError) -> JSONResponse:
        return _error(400, "storage_error", str(exc))


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class CreateSheetRequest(BaseModel):
    name: str | None = None


class RenameSheetRequest(BaseModel):
    name: str


class DuplicateSheetRequest(BaseModel):
    name: str | None = None


class ChatRequest(BaseModel):
    text: str
    selected_cell: str | None = None


class EvaluateRequest(BaseModel):
    formula: str


class ValidateFormulaRequest(BaseModel):
    text: str


class ImportCsvRequest(BaseModel):
    name: str
    text: str


class ImportWorkbookRequest(BaseModel):
    text: str


# ---------------------------------------------------------------------------
# Router
# ---------------------------------------------------------------------------


def _api_router() -> APIRouter:
    router = APIRouter(prefix="/api")

    # -- Sheet CRUD --

    @router.get("/sheets")
    async def list_sheets() -> list[dict[str, Any]]:
        return _svc().list_sheets()

    @router.post("/sheets")
    async def create_sheet(req: CreateSheetRequest) -> dict[str, Any]:
        try:
            return _svc().create_sheet(req.name)
        except ValueError as exc:
            raise HTTPException(400, str(exc))

    @router.get("/sheets/{sheet_id}")
    async def get_sheet(sheet_id: str) -> dict[str, Any]:
        return _svc().open_sheet(sheet_id)

    @router.patch("/sheets/{sheet_id}")
    async def rename_sheet(sheet_id: str, req: RenameSheetRequest) -> dict[str, Any]:
        try:
            return _svc().rename_sheet(sheet_id, req.name)
        except ValueError as exc:
            raise HTTPException(400, str(exc))

    @router.post("/sheets/{sheet_id}/duplicate")
    async def duplicate_sheet(sheet_id: str, req: DuplicateSheetRequest) -> dict[str, Any]:
        try:
            return _svc().duplicate_sheet(sheet_id, req.name)
        except ValueError as exc:
            raise HTTPException(400, str(exc))

    @router.delete("/sheets/{sheet_id}")
    async def delete_sheet(sheet_id: str) -> dict[str, Any]:
        try:
            return _svc().delete_sheet(sheet_id)
        except ValueError as exc:
            raise HTTPException(400, str(exc))

    # -- Commands --

    @router.post("/sheets/{sheet_id}/commands")
    async def apply_command(
        sheet_id: str, payload: dict[str, Any] = Body(...)
    ) -> dict[str, Any]:
        return _svc().apply(sheet_id, payload)

    @router.post("/sheets/{sheet_id}/chat")
    async def chat(sheet_id: str, req: ChatRequest) -> dict[str, Any]:
        return _svc().apply_text(sheet_id, req.text, req.selected_cell)

    @router.post("/sheets/{sheet_id}/evaluate")
    async def evaluate(sheet_id: str, req: EvaluateRequest) -> dict[str, Any]:
        return _svc().evaluate(sheet_id, req.formula)

    @router.post("/formula/validate")
    async def validate_formula(req: ValidateFormulaRequest) -> dict[str, Any]:
        return _svc().validate_formula(req.text)

    # -- Persistence / export --

    @router.post("/sheets/{sheet_id}/save")
    async def save_sheet(sheet_id: str) -> dict[str, Any]:
        return _svc().save(sheet_id)

    @router.get("/sheets/{sheet_id}/export.csv")
    async def export_csv(sheet_id: str) -> PlainTextResponse:
        text = _svc().export_csv(sheet_id)
        return PlainTextResponse(
            text,
            media_type="text/csv",
            headers={"Content-Disposition": f'attachment; filename="{sheet_id}.csv"'},
        )

    @router.post("/import/csv")
    async def import_csv(req: ImportCsvRequest) -> dict[str, Any]:
        try:
            return _svc().import_csv(req.text, req.name)
        except ValueError as exc:
            raise HTTPException(400, str(exc))

    @router.get("/workbook")
    async def export_workbook() -> PlainTextResponse:
        return PlainTextResponse(_svc().export_workbook(), media_type="application/json")

    @router.post("/workbook")
    async def import_workbook(req: ImportWorkbookRequest) -> dict[str, Any]:
        return _svc().import_workbook(req.text)

    # -- Events --

    @router.get("/events")
    async def get_events(
        level: str | None = Query(None),
        event_type: str | None = Query(None),
        sheet_id: str | None = Query(None),
        limit: int = Query(200, ge=1, le=2000),
    ) -> list[dict[str, Any]]:
        return _svc().tail_events(
            level=level, event_type=event_type, sheet_id=sheet_id, limit=limit,
        )

    return router
