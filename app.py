# !!!
# TO RUN THE SERVER: uvicorn app:app --host 0.0.0.0 --port 8000
# !!!

from __future__ import annotations

import os
from dataclasses import asdict
from datetime import datetime
from http import HTTPStatus
from pathlib import Path
from typing import Dict, List, Optional

from fastapi import FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from beatlens.config import DB_PATH, cors_origins, load_config
from beatlens.errors import ConfigError, FormatError, InvalidInput, SongNotFound
from beatlens.log import log_detail, log_section, log_step, log_success, setup_logging
from beatlens.recognizer import MatchReport, ShazamRecognizer

MAX_UPLOAD_BYTES = 50 * 1024 * 1024

log = setup_logging()


def _error(status: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status, content={
        "status": status,
        "error": HTTPStatus(status).phrase,
        "message": message,
        "timestamp": datetime.now().isoformat(timespec="seconds"),
    })


def _report_to_json(report: MatchReport) -> Dict:
    return {
        "matches": [asdict(m) for m in report.matches],
        "query_fingerprint_count": report.query_fingerprint_count,
        "query_duration_seconds": report.query_duration_seconds,
    }


def _check_upload(content: bytes, max_bytes: int) -> bytes:
    if not content:
        log.warning("Empty file upload rejected")
        raise HTTPException(status_code=400, detail="Empty upload.")
    if len(content) > max_bytes:
        log.warning(f"Upload of {len(content)} bytes rejected")
        raise HTTPException(
            status_code=413,
            detail=f"File too large. Maximum size is {max_bytes // (1024 * 1024)}MB.",
        )
    log_detail("File size", f"{len(content) / 1024:.1f} KB")
    return content


def create_app(recognizer: Optional[ShazamRecognizer] = None,
               db_path: Optional[str] = None,
               allowed_origins: Optional[List[str]] = None,
               max_upload_bytes: int = MAX_UPLOAD_BYTES) -> FastAPI:
    app = FastAPI(title="BeatLens API", version="1.0")

    if recognizer is None:
        log_section("🎵 BeatLens API Server")
        log_step(1, "Loading configuration...")
        config = load_config()
        log_detail("Profile", config.profile)

        log_step(2, "Loading fingerprint index...")
        recognizer = ShazamRecognizer(config)
        db_path = db_path or os.environ.get("BEATLENS_DB", DB_PATH)
        log_detail("Database path", str(db_path))
        recognizer.load(Path(db_path))
        log_success(f"{recognizer.num_indexed_songs} songs loaded")

    app.state.recognizer = recognizer
    app.state.db_path = db_path

    origins = cors_origins() if allowed_origins is None else allowed_origins
    if origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=origins,
            allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
            allow_headers=["*"],
            allow_credentials=True,
            max_age=3600,
        )

    def persist():
        if app.state.db_path:
            recognizer.save(Path(app.state.db_path))

    async def read_upload(file: UploadFile) -> bytes:
        return _check_upload(await file.read(), max_upload_bytes)

    # -----------------------------
    # Error mapping
    # -----------------------------

    @app.exception_handler(SongNotFound)
    async def handle_not_found(request: Request, exc: SongNotFound):
        return _error(404, str(exc))

    @app.exception_handler(FormatError)
    @app.exception_handler(InvalidInput)
    async def handle_bad_audio(request: Request, exc: Exception):
        log.error(f"Audio processing error: {exc}")
        return _error(400, str(exc))

    @app.exception_handler(ConfigError)
    async def handle_config(request: Request, exc: ConfigError):
        log.error(f"Configuration error: {exc}")
        return _error(500, str(exc))

    @app.exception_handler(StarletteHTTPException)
    async def handle_http(request: Request, exc: StarletteHTTPException):
        return _error(exc.status_code, str(exc.detail))

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception):
        log.exception(f"Unexpected error on {request.method} {request.url.path}")
        return _error(500, "An unexpected error occurred.")

    # -----------------------------
    # API endpoints
    # -----------------------------

    @app.get("/health")
    def health() -> Dict[str, str]:
        log.debug("Health check requested")
        return {"status": "ok"}

    @app.get("/stats")
    def stats() -> JSONResponse:
        return JSONResponse(asdict(recognizer.stats()))

    @app.get("/songs")
    def list_songs() -> JSONResponse:
        return JSONResponse([asdict(s) for s in recognizer.list_songs()])

    @app.get("/songs/{song_id}")
    def get_song(song_id: int) -> JSONResponse:
        return JSONResponse(asdict(recognizer.get_song(song_id)))

    @app.delete("/songs/{song_id}")
    def delete_song(song_id: int) -> JSONResponse:
        removed = recognizer.delete_song(song_id)
        persist()
        return JSONResponse({"deleted": song_id, "fingerprints_removed": removed})

    # uploads are read on the event loop; fingerprinting runs in the threadpool

    @app.post("/songs")
    async def index_song(
        title: str = Form(...),
        artist: Optional[str] = Form(None),
        file: UploadFile = File(...),
    ) -> JSONResponse:
        log.info(f"🎼 Indexing request: {title} - {artist or 'unknown'}")
        content = await read_upload(file)
        song = await run_in_threadpool(recognizer.index_wav_bytes, content, title, artist)
        await run_in_threadpool(persist)
        return JSONResponse(asdict(song), status_code=201)

    @app.post("/match")
    async def match(file: UploadFile = File(...)) -> JSONResponse:
        log.info("🎧 New recognition request received")
        log_detail("Filename", file.filename or "unknown")
        content = await read_upload(file)
        report = await run_in_threadpool(recognizer.recognize_wav_bytes, content)
        log.info("✨ Request completed successfully")
        return JSONResponse(_report_to_json(report))

    @app.post("/match/pcm")
    async def match_pcm(request: Request) -> JSONResponse:
        content = _check_upload(await request.body(), max_upload_bytes)
        report = await run_in_threadpool(recognizer.recognize_pcm, content)
        return JSONResponse(_report_to_json(report))

    return app


app = create_app()
