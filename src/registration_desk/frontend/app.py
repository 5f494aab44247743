from __future__ import annotations

import base64
import binascii
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from starlette.applications import Starlette
from starlette.exceptions import HTTPException
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from ..domain.constants import STATUS_CHOICES
from ..domain.models import AppConfig
from ..logging import get_logger
from ..orchestrator.access import InvalidCredentialsError
from ..orchestrator.context import AppContext, build_context
from ..orchestrator.export import export_csv
from ..orchestrator.extraction import ExtractionError, split_data_uri
from ..orchestrator.ingestion import ManualEntryError, UploadedFile
from ..orchestrator.records import RecordNotFoundError, RecordStateError


LOG = get_logger("frontend")


async def _json_body(request: Request) -> Dict[str, Any]:
    try:
        body = await request.json()
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Request body must be JSON") from exc
    if not isinstance(body, dict):
        raise HTTPException(status_code=400, detail="Request body must be a JSON object")
    return body


async def _http_error(_: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse({"detail": exc.detail}, status_code=exc.status_code, headers=exc.headers)


def create_app(
    root_dir: Optional[str] = None,
    *,
    context: Optional[AppContext] = None,
    allow_origins: Optional[List[str]] = None,
) -> Starlette:
    """Create a Starlette app exposing the registration desk JSON API."""

    ctx = context or build_context(root_dir)

    def _require_login() -> str:
        role = ctx.access.current_role()
        if role is None:
            raise HTTPException(status_code=401, detail="Login required")
        return role

    def _require_super_admin() -> None:
        _require_login()
        if not ctx.access.is_super_admin():
            raise HTTPException(status_code=403, detail="Super admin only")

    def _record_or_404(record_id: str):
        record = ctx.store.get(record_id)
        if record is None:
            raise HTTPException(status_code=404, detail="Record not found")
        return record

    # ---------- session ----------
    async def health(_: Request) -> JSONResponse:
        return JSONResponse({"status": "ok", "records": len(ctx.store), "in_flight": ctx.controller.in_flight})

    async def login(request: Request) -> JSONResponse:
        body = await _json_body(request)
        try:
            role = ctx.access.login(str(body.get("username") or ""), str(body.get("password") or ""))
        except InvalidCredentialsError as exc:
            raise HTTPException(status_code=401, detail=str(exc)) from exc
        return JSONResponse({"role": role})

    async def logout(_: Request) -> JSONResponse:
        ctx.access.logout()
        return JSONResponse({"role": None})

    async def session(_: Request) -> JSONResponse:
        return JSONResponse({"role": ctx.access.current_role()})

    # ---------- branding ----------
    async def get_config(_: Request) -> JSONResponse:
        return JSONResponse(ctx.branding.current.to_dict())

    async def put_config(request: Request) -> JSONResponse:
        _require_super_admin()
        body = await _json_body(request)
        saved = ctx.branding.save(AppConfig.from_dict(body))
        return JSONResponse(saved.to_dict())

    # ---------- users ----------
    async def users(request: Request) -> JSONResponse:
        _require_super_admin()
        if request.method == "POST":
            body = await _json_body(request)
            try:
                account = ctx.access.add_user(
                    str(body.get("username") or ""),
                    str(body.get("password") or ""),
                    str(body.get("role") or "staff"),
                )
            except ValueError as exc:
                raise HTTPException(status_code=400, detail=str(exc)) from exc
            return JSONResponse({"username": account.username, "role": account.role}, status_code=201)
        return JSONResponse({"items": [{"username": u.username, "role": u.role} for u in ctx.access.list_users()]})

    async def delete_user(request: Request) -> JSONResponse:
        _require_super_admin()
        username = request.path_params["username"]
        if not ctx.access.remove_user(username):
            raise HTTPException(status_code=404, detail="User not found")
        return JSONResponse({"deleted": username})

    # ---------- records ----------
    async def list_records(request: Request) -> JSONResponse:
        _require_login()
        qp = request.query_params
        status = qp.get("status") or None
        if status is not None and status not in STATUS_CHOICES:
            raise HTTPException(status_code=400, detail="Invalid status filter")
        items = ctx.controller.search(qp.get("search"), status=status)
        return JSONResponse({"items": [r.to_dict() for r in items], "total": len(items)})

    async def upload(request: Request) -> JSONResponse:
        _require_login()
        body = await _json_body(request)
        files_in = body.get("files")
        if not isinstance(files_in, list) or not files_in:
            raise HTTPException(status_code=400, detail="files must be a non-empty list")
        files: List[UploadedFile] = []
        for idx, f in enumerate(files_in):
            if not isinstance(f, dict) or not isinstance(f.get("data_url"), str):
                raise HTTPException(status_code=400, detail=f"files[{idx}].data_url required")
            files.append(UploadedFile(name=str(f.get("name") or f"upload-{idx + 1}"), data_uri=f["data_url"]))
        created = ctx.controller.ingest_files(files)
        return JSONResponse({"items": [r.to_dict() for r in created]}, status_code=202)

    async def manual(request: Request) -> JSONResponse:
        _require_login()
        body = await _json_body(request)
        try:
            record = ctx.controller.submit_manual(body)
        except ManualEntryError as exc:
            return JSONResponse({"detail": exc.message, "field": exc.field}, status_code=400)
        return JSONResponse(record.to_dict(), status_code=201)

    async def record_detail(request: Request) -> JSONResponse:
        _require_login()
        record_id = request.path_params["record_id"]
        if request.method == "GET":
            return JSONResponse(_record_or_404(record_id).to_dict())
        if request.method == "DELETE":
            try:
                removed = ctx.controller.remove_record(record_id)
            except RecordNotFoundError as exc:
                raise HTTPException(status_code=404, detail="Record not found") from exc
            return JSONResponse({"deleted": removed.id})
        body = await _json_body(request)
        data = body.get("data", body)
        if not isinstance(data, dict):
            raise HTTPException(status_code=400, detail="data must be an object")
        try:
            record = ctx.controller.edit_record(record_id, data)
        except RecordNotFoundError as exc:
            raise HTTPException(status_code=404, detail="Record not found") from exc
        except RecordStateError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        return JSONResponse(record.to_dict())

    async def clear_records(_: Request) -> JSONResponse:
        _require_login()
        return JSONResponse({"deleted": ctx.controller.clear_all()})

    async def sync_record(request: Request) -> JSONResponse:
        _require_login()
        record_id = request.path_params["record_id"]
        try:
            record = await ctx.controller.sync_record(record_id)
        except RecordNotFoundError as exc:
            raise HTTPException(status_code=404, detail="Record not found") from exc
        except RecordStateError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        return JSONResponse(record.to_dict())

    async def image(request: Request) -> Response:
        _require_login()
        record_id = request.path_params["record_id"]
        data_uri = ctx.images.get(record_id)
        if data_uri is None:
            raise HTTPException(status_code=404, detail="Image no longer available")
        try:
            mime, payload = split_data_uri(data_uri)
            content = base64.b64decode(payload)
        except (ExtractionError, binascii.Error) as exc:
            raise HTTPException(status_code=404, detail="Image unreadable") from exc
        return Response(content, media_type=mime)

    # ---------- dashboard / export ----------
    async def dashboard(_: Request) -> JSONResponse:
        _require_login()
        view = await ctx.dashboard.refresh()
        return JSONResponse(view.to_dict())

    async def export(_: Request) -> Response:
        _require_login()
        text = export_csv(ctx.store.list_all())
        if text is None:
            raise HTTPException(status_code=404, detail="Nothing to export")
        return Response(
            text,
            media_type="text/csv",
            headers={"Content-Disposition": 'attachment; filename="registrations.csv"'},
        )

    async def index(_: Request) -> JSONResponse:
        return JSONResponse({"detail": "Registration desk API is running.", "branding": ctx.branding.current.to_dict()})

    routes = [
        Route("/", index, methods=["GET"]),
        Route("/api/health", health, methods=["GET"]),
        Route("/api/login", login, methods=["POST"]),
        Route("/api/logout", logout, methods=["POST"]),
        Route("/api/session", session, methods=["GET"]),
        Route("/api/config", get_config, methods=["GET"]),
        Route("/api/config", put_config, methods=["PUT"]),
        Route("/api/users", users, methods=["GET", "POST"]),
        Route("/api/users/{username:str}", delete_user, methods=["DELETE"]),
        Route("/api/records", list_records, methods=["GET"]),
        Route("/api/records", clear_records, methods=["DELETE"]),
        Route("/api/records/upload", upload, methods=["POST"]),
        Route("/api/records/manual", manual, methods=["POST"]),
        Route("/api/records/{record_id:str}", record_detail, methods=["GET", "PATCH", "DELETE"]),
        Route("/api/records/{record_id:str}/sync", sync_record, methods=["POST"]),
        Route("/api/images/{record_id:str}", image, methods=["GET"]),
        Route("/api/dashboard", dashboard, methods=["GET"]),
        Route("/api/export", export, methods=["GET"]),
    ]

    @asynccontextmanager
    async def lifespan(_: Starlette):
        LOG.info(f"Registration desk API ready with {len(ctx.store)} stored record(s)")
        yield
        await ctx.aclose()

    app = Starlette(
        debug=False,
        routes=routes,
        lifespan=lifespan,
        exception_handlers={HTTPException: _http_error},
    )
    app.state.context = ctx

    origins = allow_origins or ["http://localhost:5173", "http://127.0.0.1:5173"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if "*" in origins else origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    return app


__all__ = ["create_app"]
