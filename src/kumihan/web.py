from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping

from fastapi import Body, FastAPI, HTTPException
from fastapi.responses import JSONResponse

from .book_io import summarize_document
from .capacity import capacity_to_payload
from .layout import page_to_payload
from .logging_utils import collect_parser_warnings
from .nodes import document_to_payload
from .pagination import divide_into_pages
from .parser import format_markup, parse
from .settings import ReaderSettings

__all__ = ["WebConfig", "create_app"]

MAX_TEXT_LENGTH = 5_000_000


@dataclass(slots=True)
class WebConfig:
    settings: ReaderSettings = field(default_factory=ReaderSettings)
    max_text_length: int = MAX_TEXT_LENGTH


def _positive_number(payload: Mapping[str, object], key: str) -> float:
    value = payload.get(key)
    if not isinstance(value, (int, float)) or isinstance(value, bool) or value <= 0:
        raise HTTPException(status_code=400, detail=f"{key} must be a positive number.")
    return float(value)


def _request_settings(base: ReaderSettings, payload: Mapping[str, object]) -> ReaderSettings:
    overrides = payload.get("settings")
    if overrides is None:
        return base
    if not isinstance(overrides, dict):
        raise HTTPException(status_code=400, detail="settings must be an object.")
    merged = {**base.as_payload(), **overrides}
    return ReaderSettings.from_payload(merged)


def create_app(config: WebConfig | None = None) -> FastAPI:
    config = config or WebConfig()
    app = FastAPI(title="kumihan")
    app.state.config = config

    def _request_text(payload: Mapping[str, object]) -> str:
        text = payload.get("text")
        if not isinstance(text, str):
            raise HTTPException(status_code=400, detail="text is required.")
        if len(text) > config.max_text_length:
            raise HTTPException(status_code=413, detail="text is too long.")
        return text.replace("\r\n", "\n")

    @app.get("/api/health")
    def api_health() -> JSONResponse:
        from . import __version__

        return JSONResponse({"status": "ok", "version": __version__})

    @app.post("/api/capacity")
    def api_capacity(payload: dict[str, object] = Body(...)) -> JSONResponse:
        settings = _request_settings(config.settings, payload)
        width = _positive_number(payload, "width")
        height = _positive_number(payload, "height")
        capacity = settings.capacity_for(width, height)
        return JSONResponse(
            {
                "orientation": settings.orientation,
                "ready": capacity.is_ready,
                "capacity": capacity_to_payload(capacity),
            }
        )

    @app.post("/api/parse")
    def api_parse(payload: dict[str, object] = Body(...)) -> JSONResponse:
        text = _request_text(payload)
        output_format = payload.get("format", "json")
        if output_format not in {"json", "markup"}:
            raise HTTPException(status_code=400, detail="format must be 'json' or 'markup'.")
        document, messages = collect_parser_warnings(lambda: parse(text))
        response: dict[str, object] = {
            "document": document_to_payload(document),
            "summary": summarize_document(document).as_payload(),
            "warnings": messages,
        }
        if output_format == "markup":
            response["markup"] = format_markup(document.nodes)
        return JSONResponse(response)

    @app.post("/api/paginate")
    def api_paginate(payload: dict[str, object] = Body(...)) -> JSONResponse:
        text = _request_text(payload)
        settings = _request_settings(config.settings, payload)
        width = _positive_number(payload, "width")
        height = _positive_number(payload, "height")
        capacity = settings.capacity_for(width, height)
        if not capacity.is_ready:
            raise HTTPException(
                status_code=422,
                detail="Viewport cannot hold any characters; check font size, line height and padding.",
            )
        document, messages = collect_parser_warnings(lambda: parse(text))
        pages = divide_into_pages(document.nodes, capacity, settings.orientation, settings.page_options())
        page_value = payload.get("page")
        if page_value is not None:
            if not isinstance(page_value, int) or isinstance(page_value, bool) or not 1 <= page_value <= len(pages):
                raise HTTPException(status_code=404, detail="Page not found.")
            selected = [pages[page_value - 1]]
        else:
            selected = pages
        return JSONResponse(
            {
                "orientation": settings.orientation,
                "capacity": capacity_to_payload(capacity),
                "total_pages": len(pages),
                "pages": [page_to_payload(page) for page in selected],
                "warnings": messages,
            }
        )

    return app
