import logging
import time
from datetime import datetime
from typing import Literal, Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from .core import lifecycle
from .core.config import Config
from .core.exceptions import RedirectException
from .core.middleware import global_exception_handler, log_requests
from .core.pipeline import define_handler
from .core.types import RequestContext
from .core.validation import sanitize_body_with, sanitize_params_with, sanitize_response_with
from .handler import register_handler
from .services.documents import find_by_id_required, save_on_document_from, update_document_from_to
from .services.supabase_model import SupabaseModel


logger = logging.getLogger(__name__)


class MemoryParams(BaseModel):
    memory_id: str = Field(pattern=r"^[a-zA-Z0-9_-]+$")


class MemoryUpdate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    status: Literal["draft", "published", "archived"]
    photo_url: Optional[str] = None


class MemoryOut(BaseModel):
    id: str
    user_id: str
    title: str
    status: str
    photo_url: Optional[str] = None
    download_url: Optional[str] = None


def _caller_from_headers(request_context: RequestContext) -> dict:
    return {"user_id": request_context.request.headers.get("x-user-id")}


def _require_caller(ctx: dict) -> dict:
    user_id = ctx["pre_context"]["user_id"]
    if not user_id:
        raise HTTPException(status_code=401, detail="Missing x-user-id header")
    return {"user_id": user_id}


def _owns_memory(ctx: dict) -> bool:
    return str(ctx["memory"].get("user_id")) == ctx["user_id"]


def memory_handlers(memory_model) -> dict:
    """Handler configs for the memories resource, keyed by route name."""
    find_memory = find_by_id_required(memory_model)

    async def attach_memory(ctx: dict) -> dict:
        return {"memory": await find_memory(ctx["params"]["memory_id"])}

    update_memory = update_document_from_to("memory")
    save_memory = save_on_document_from("memory")

    async def update_and_save(ctx: dict) -> dict:
        ctx = {**ctx, **await update_memory(ctx)}
        return await save_memory(ctx)

    def redirect_to_download(ctx: dict) -> dict:
        download_url = ctx["memory"].get("download_url")
        if not download_url:
            raise HTTPException(status_code=404, detail="No download available yet")
        raise RedirectException(download_url, 307)

    base = define_handler(
        init_pre_context=_caller_from_headers,
        sanitize_params=sanitize_params_with(MemoryParams),
        pre_authorize=lifecycle.pre_authorize(_require_caller),
        attach_data=lifecycle.attach_data(attach_memory),
        final_authorize=lifecycle.final_authorize(_owns_memory),
        respond=lifecycle.respond(lambda ctx: ctx["memory"]),
        sanitize_response=sanitize_response_with(MemoryOut),
    )
    return {
        "get_memory": base,
        "update_memory": define_handler(
            base,
            sanitize_body=sanitize_body_with(MemoryUpdate, partial=True),
            do_work=lifecycle.do_work(update_and_save),
        ),
        "download_memory": define_handler(base, do_work=lifecycle.do_work(redirect_to_download)),
    }


def create_app(memory_model=None) -> FastAPI:
    app = FastAPI(title="hipthrust example API")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=Config.allowed_origins(),
        allow_credentials=True,
        allow_methods=["GET", "PATCH", "OPTIONS"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def _log_requests(request, call_next):
        return await log_requests(request, call_next)

    @app.exception_handler(Exception)
    async def _global_exception_handler(request, exc):
        return await global_exception_handler(request, exc)

    if memory_model is None:
        memory_model = SupabaseModel(Config.MEMORIES_TABLE)
    handlers = memory_handlers(memory_model)
    register_handler(app, "/memories/{memory_id}", handlers["get_memory"], methods=["GET"])
    register_handler(app, "/memories/{memory_id}", handlers["update_memory"], methods=["PATCH"])
    register_handler(app, "/memories/{memory_id}/download", handlers["download_memory"], methods=["GET"])

    @app.get("/health")
    async def health_check():
        """Report whether the document store is configured."""
        health_start_time = time.time()
        try:
            Config.validate()
            status = "healthy"
            error = None
        except ValueError as e:
            logger.error(f"Health check failed: {str(e)}")
            status = "unhealthy"
            error = str(e)

        return {
            "status": status,
            "service": "hipthrust",
            "timestamp": datetime.now().isoformat(),
            "error": error,
            "response_time_ms": round((time.time() - health_start_time) * 1000, 2),
        }

    return app


app = create_app()
