"""server.py — HTTP server for the phonebook web UI and the base station.

Uses the stdlib http.server. Routes:

  GET    /phonebook.xml                   Gigaset LocalDirectory XML (cached, ETag)
  GET    /api/entries[?search=]           list entries
  POST   /api/entries                     create entry
  PUT    /api/entries/<id>                update entry (partial)
  DELETE /api/entries/<id>                delete entry
  DELETE /api/entries                     batch delete, body {"ids": [...]}
  POST   /api/import-preview?format=      raw vCard / JSON body → import plan
  POST   /api/import-confirm              plan + strategy → apply
  POST   /api/import-json?mode=           legacy JSON import (merge | replace)
  GET    /api/export                      phonebook.json download
  GET    /api/export.vcf                  vCard download
  GET    /api/entries/conversion-status   phone formatting status
  POST   /api/entries/convert-all         apply phone formatting to all entries
  GET    /api/entries/find-duplicates     stored entries sharing a number or name
  GET    /api/settings                    current settings
  PUT    /api/settings                    update settings
  GET    /api/status                      version and entry count
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from email.utils import formatdate
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, HTTPServer
from pathlib import Path
from typing import Any
from urllib.parse import parse_qs, unquote, urlparse

from . import __version__
from .cache import XmlCache
from .config import Paths, Settings, ensure_workspace, save_settings
from .errors import (
    ImportBlockedError,
    InvalidPlanError,
    InvalidSettingError,
    InvalidStrategyError,
    NotFoundError,
    ParseError,
)
from .dedupe import entries_without_phone, find_phonebook_duplicates
from .exporter import export_json, export_vcards
from .importer import confirm, import_json_replace, preview
from .io import SourceFormat, decode_bytes, parse_phonebook_json
from .model import PHONE_FIELDS, ContactRecord
from .phone import conversion_intents
from .storage import PhonebookStore
from .xml import render_phonebook_xml

logger = logging.getLogger(__name__)

_STATUS_FOR_ERROR = (
    (NotFoundError, HTTPStatus.NOT_FOUND),
    (ImportBlockedError, HTTPStatus.UNPROCESSABLE_ENTITY),
    ((ParseError, InvalidPlanError, InvalidStrategyError, InvalidSettingError), HTTPStatus.BAD_REQUEST),
)


_RESERVED_ENTRY_PATHS = {"conversion-status", "convert-all", "find-duplicates"}


class BadRequest(Exception):
    pass


@dataclass
class PhonebookApp:
    """Everything a request needs: where files live, settings, store, cache."""

    paths: Paths
    settings: Settings
    store: PhonebookStore
    cache: XmlCache = field(default_factory=XmlCache)

    @classmethod
    def from_workspace(cls, base: Path | None = None) -> PhonebookApp:
        paths, settings = ensure_workspace(base)
        app = cls(paths=paths, settings=settings, store=PhonebookStore(paths.data_dir))
        app.store.add_listener(app.cache.invalidate)
        return app


@dataclass
class Response:
    body: Any = None
    status: int = HTTPStatus.OK
    content_type: str = "application/json"
    headers: dict[str, str] = field(default_factory=dict)


# ── API handlers ───────────────────────────────────────────────────────────────

def _first(params: dict[str, list[str]], name: str, default: str = "") -> str:
    return params.get(name, [default])[0]


def _json_body(raw: bytes) -> Any:
    if not raw:
        return {}
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        raise BadRequest("Request body is not valid JSON") from None


def _api_list_entries(app: PhonebookApp, params: dict) -> Response:
    entries = app.store.list_entries(search=_first(params, "search") or None)
    return Response([e.to_dict() for e in entries])


def _api_create_entry(app: PhonebookApp, body: Any) -> Response:
    if not isinstance(body, dict):
        raise BadRequest("Entry must be an object")
    record = app.settings.phone_policy().format_record(ContactRecord.from_dict(body))
    return Response(app.store.create_entry(record).to_dict(), status=HTTPStatus.CREATED)


def _api_update_entry(app: PhonebookApp, entry_id: str, body: Any) -> Response:
    if not isinstance(body, dict):
        raise BadRequest("Entry must be an object")
    policy = app.settings.phone_policy()
    updates = dict(body)
    if policy.enabled:
        for key in PHONE_FIELDS:
            if isinstance(updates.get(key), str):
                updates[key] = policy.apply(updates[key])
    return Response(app.store.update_entry(entry_id, updates).to_dict())


def _api_delete_entry(app: PhonebookApp, entry_id: str) -> Response:
    app.store.delete_entry(entry_id)
    return Response(status=HTTPStatus.NO_CONTENT)


def _api_delete_entries(app: PhonebookApp, body: Any) -> Response:
    ids = body.get("ids") if isinstance(body, dict) else None
    if not isinstance(ids, list):
        raise BadRequest("ids must be an array")
    return Response({"deleted": app.store.delete_entries(str(i) for i in ids)})


def _source_format(params: dict, content_type: str) -> SourceFormat:
    fmt = _first(params, "format")
    if fmt:
        return SourceFormat.parse(fmt)
    if "json" in content_type:
        return SourceFormat.JSON
    return SourceFormat.VCARD


def _api_import_preview(app: PhonebookApp, params: dict, raw: bytes, content_type: str) -> Response:
    if not raw:
        raise BadRequest("No file uploaded")
    plan = preview(
        _source_format(params, content_type),
        raw,
        app.store.list_entries(),
        max_entries=app.settings.max_import_entries,
        source_label=_first(params, "filename", "upload"),
    )
    return Response(plan.to_dict())


def _api_import_confirm(app: PhonebookApp, body: Any) -> Response:
    outcome = confirm(body, app.store, max_entries=app.settings.max_import_entries)
    return Response(outcome.to_dict())


def _api_import_json(app: PhonebookApp, params: dict, raw: bytes) -> Response:
    if not raw:
        raise BadRequest("No file uploaded")
    mode = _first(params, "mode", "merge")
    if mode == "replace":
        count = import_json_replace(raw, app.store)
    else:
        count = len(app.store.import_entries(parse_phonebook_json(decode_bytes(raw))))
    return Response({"imported": count, "replaced": mode == "replace"})


def _api_export(app: PhonebookApp) -> Response:
    return Response(
        export_json(app.store.list_entries()),
        headers={"Content-Disposition": 'attachment; filename="phonebook.json"'},
    )


def _api_export_vcf(app: PhonebookApp) -> Response:
    return Response(
        export_vcards(app.store.list_entries()),
        content_type="text/vcard; charset=utf-8",
        headers={"Content-Disposition": 'attachment; filename="phonebook.vcf"'},
    )


def _api_conversion_status(app: PhonebookApp) -> Response:
    policy = app.settings.phone_policy()
    entries = app.store.list_entries()
    return Response({
        "isConfigured": app.settings.is_configured,
        "enabled": policy.enabled,
        "unconvertedCount": policy.count_unconverted(entries) if policy.enabled else 0,
        "totalCount": len(entries),
    })


def _api_convert_phones(app: PhonebookApp) -> Response:
    policy = app.settings.phone_policy()
    if not policy.enabled:
        raise BadRequest("No phone transformation is enabled in settings")
    result = app.store.apply(conversion_intents(app.store.list_entries(), policy))
    return Response({"converted": result.updated})


def _api_find_duplicates(app: PhonebookApp) -> Response:
    entries = app.store.list_entries()
    return Response({
        "duplicates": [g.to_dict() for g in find_phonebook_duplicates(entries)],
        "noPhone": [e.id for e in entries_without_phone(entries)],
        "totalChecked": len(entries),
    })


def _api_status(app: PhonebookApp) -> Response:
    modified = app.store.last_modified
    return Response({
        "version": __version__,
        "entries": len(app.store.list_entries()),
        "lastModified": formatdate(modified, usegmt=True) if modified is not None else None,
    })


def _api_settings(app: PhonebookApp) -> Response:
    return Response(app.settings.to_dict())


def _api_save_settings(app: PhonebookApp, body: Any) -> Response:
    if not isinstance(body, dict):
        raise BadRequest("Settings must be an object")
    app.settings = save_settings(app.paths, body)
    app.cache.invalidate()
    return Response(app.settings.to_dict())


def _phonebook_xml(app: PhonebookApp, if_none_match: str | None) -> Response:
    cached = app.cache.get_or_render(lambda: render_phonebook_xml(app.store.list_entries()))
    headers = {
        "ETag": f'"{cached.etag}"',
        "Last-Modified": formatdate(cached.last_modified.timestamp(), usegmt=True),
        "Cache-Control": "no-cache",
    }
    if if_none_match and cached.etag in if_none_match:
        return Response(status=HTTPStatus.NOT_MODIFIED, headers=headers)
    return Response(cached.xml, content_type="application/xml; charset=utf-8", headers=headers)


# ── Request handler ────────────────────────────────────────────────────────────

class PhonebookHandler(BaseHTTPRequestHandler):
    app: PhonebookApp  # set by make_server
    server_version = f"gigaset-phonebook/{__version__}"

    def log_message(self, fmt, *args):
        logger.debug("%s %s", self.address_string(), fmt % args)

    def _send(self, resp: Response):
        if resp.body is None:
            data = b""
        elif isinstance(resp.body, str):
            data = resp.body.encode("utf-8")
        else:
            data = json.dumps(resp.body, ensure_ascii=False).encode("utf-8")
        self.send_response(resp.status)
        if data:
            self.send_header("Content-Type", resp.content_type)
        self.send_header("Content-Length", str(len(data)))
        self.send_header("Access-Control-Allow-Origin", "*")
        for name, value in resp.headers.items():
            self.send_header(name, value)
        self.end_headers()
        if data and self.command != "HEAD":
            self.wfile.write(data)

    def _read_body(self) -> bytes:
        length = int(self.headers.get("Content-Length", 0) or 0)
        return self.rfile.read(length) if length > 0 else b""

    def _dispatch(self, route):
        try:
            resp = route()
        except BadRequest as exc:
            resp = Response({"error": str(exc)}, status=HTTPStatus.BAD_REQUEST)
        except Exception as exc:
            for kinds, status in _STATUS_FOR_ERROR:
                if isinstance(exc, kinds):
                    resp = Response({"error": str(exc)}, status=status)
                    if isinstance(exc, ImportBlockedError):
                        resp.body["issues"] = [i.to_dict() for i in exc.issues]
                    break
            else:
                logger.exception("%s %s failed", self.command, self.path)
                resp = Response({"error": "Internal server error"}, status=HTTPStatus.INTERNAL_SERVER_ERROR)
        if resp is None:
            resp = Response({"error": "Not found"}, status=HTTPStatus.NOT_FOUND)
        self._send(resp)

    @staticmethod
    def _entry_id(path: str) -> str | None:
        prefix = "/api/entries/"
        if path.startswith(prefix) and len(path) > len(prefix):
            entry_id = unquote(path[len(prefix):])
            if "/" not in entry_id and entry_id not in _RESERVED_ENTRY_PATHS:
                return entry_id
        return None

    def do_OPTIONS(self):
        self.send_response(HTTPStatus.OK)
        self.send_header("Access-Control-Allow-Origin", "*")
        self.send_header("Access-Control-Allow-Methods", "GET, POST, PUT, DELETE, OPTIONS")
        self.send_header("Access-Control-Allow-Headers", "Content-Type")
        self.send_header("Content-Length", "0")
        self.end_headers()

    def do_GET(self):
        parsed = urlparse(self.path)
        path = parsed.path
        params = parse_qs(parsed.query)
        app = self.app

        def route():
            if path == "/phonebook.xml":
                return _phonebook_xml(app, self.headers.get("If-None-Match"))
            if path == "/api/entries":
                return _api_list_entries(app, params)
            if path == "/api/entries/conversion-status":
                return _api_conversion_status(app)
            if path == "/api/entries/find-duplicates":
                return _api_find_duplicates(app)
            if path == "/api/export":
                return _api_export(app)
            if path == "/api/export.vcf":
                return _api_export_vcf(app)
            if path == "/api/settings":
                return _api_settings(app)
            if path == "/api/status":
                return _api_status(app)
            return None

        self._dispatch(route)

    do_HEAD = do_GET

    def do_POST(self):
        parsed = urlparse(self.path)
        path = parsed.path
        params = parse_qs(parsed.query)
        raw = self._read_body()
        content_type = self.headers.get("Content-Type", "")
        app = self.app

        def route():
            if path == "/api/entries":
                return _api_create_entry(app, _json_body(raw))
            if path == "/api/import-preview":
                return _api_import_preview(app, params, raw, content_type)
            if path == "/api/import-confirm":
                return _api_import_confirm(app, _json_body(raw))
            if path == "/api/import-json":
                return _api_import_json(app, params, raw)
            if path == "/api/entries/convert-all":
                return _api_convert_phones(app)
            return None

        self._dispatch(route)

    def do_PUT(self):
        path = urlparse(self.path).path
        raw = self._read_body()
        app = self.app

        def route():
            if path == "/api/settings":
                return _api_save_settings(app, _json_body(raw))
            entry_id = self._entry_id(path)
            if entry_id:
                return _api_update_entry(app, entry_id, _json_body(raw))
            return None

        self._dispatch(route)

    def do_DELETE(self):
        path = urlparse(self.path).path
        raw = self._read_body()
        app = self.app

        def route():
            if path == "/api/entries":
                return _api_delete_entries(app, _json_body(raw))
            entry_id = self._entry_id(path)
            if entry_id:
                return _api_delete_entry(app, entry_id)
            return None

        self._dispatch(route)


# ── Entry point ────────────────────────────────────────────────────────────────

def make_server(app: PhonebookApp, host: str | None = None, port: int | None = None) -> HTTPServer:
    handler = type("BoundPhonebookHandler", (PhonebookHandler,), {"app": app})

    class _Server(HTTPServer):
        allow_reuse_address = True

    host = app.settings.host if host is None else host
    port = app.settings.port if port is None else port
    return _Server((host, port), handler)


def serve(app: PhonebookApp, host: str | None = None, port: int | None = None) -> None:
    server = make_server(app, host, port)
    bound_host, bound_port = server.server_address[:2]
    logger.info("Serving %s on http://%s:%d", app.paths.data_dir, bound_host, bound_port)
    logger.info("Phonebook XML: http://%s:%d/phonebook.xml", bound_host, bound_port)
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        logger.info("Shutting down")
    finally:
        server.server_close()
