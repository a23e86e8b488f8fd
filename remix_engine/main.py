from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import uvicorn
import logging
import base64

from remix_engine.core import config

# Configure Logging
logging.basicConfig(level=config.LOG_LEVEL)
logger = logging.getLogger("remix-engine")

app = FastAPI(
    title="Remix Engine",
    version="1.0.0",
    description="Voice remix mixing, effects and encoding"
)

# CORS (Allow Frontend)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"], # Allow any local port
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

from remix_engine.core.errors import DecodeError, DeviceError, InvalidTransition, RemixError

ERROR_STATUS = {
    DecodeError: 415,
    DeviceError: 503,
    InvalidTransition: 409,
}


def status_for(error: RemixError) -> int:
    for cls, status in ERROR_STATUS.items():
        if isinstance(error, cls):
            return status
    return 422


@app.exception_handler(RemixError)
async def remix_error_handler(request: Request, exc: RemixError):
    status = status_for(exc)
    logger.warning("%s %s -> %d %s: %s", request.method, request.url.path, status, type(exc).__name__, exc)
    return JSONResponse(status_code=status, content={"error": type(exc).__name__, "message": str(exc)})


@app.get("/health")
async def health_check():
    return {"status": "ok", "service": "remix-engine"}

from remix_engine.params import PARAM_SCHEMA

@app.get("/params/schema")
async def params_schema():
    return PARAM_SCHEMA

from remix_engine.core.types import AudioBuffer, EncodedAudio
from remix_engine.export import wav
from remix_engine.params.engine_params import normalize_keys, to_engine_params
from remix_engine.params.resolve import decode_audio_field, resolve_effect, resolve_remix_params
from remix_engine.pipeline import RemixJob, RemixPipeline, RemixState
from remix_engine.qc import analyze

pipeline = RemixPipeline()


def _audio_response(buffer: AudioBuffer, encoded: EncodedAudio) -> dict:
    return {
        "audio": base64.b64encode(encoded.data).decode("utf-8"),
        "mime_type": encoded.mime_type,
        "size": encoded.size,
        "duration_s": buffer.duration_s,
        "sample_rate": buffer.sample_rate,
        "channels": buffer.channels,
    }


def _job_from_body(body: dict) -> RemixJob:
    body = normalize_keys(body)
    original = body.get("original")
    return RemixJob(
        params=resolve_remix_params(to_engine_params(body.get("params") or {})),
        recording=decode_audio_field(body.get("recording"), "recording"),
        recording_mime=body.get("recording_mime", "audio/webm"),
        original=decode_audio_field(original, "original") if original is not None else None,
        original_mime=body.get("original_mime", "audio/webm"),
    )


async def _run_job(job: RemixJob, with_stems: bool = False):
    session = await pipeline.run_session(job, with_stems=with_stems)
    if session.state == RemixState.FAILED:
        raise session.error
    return session


@app.post("/remix")
async def remix(body: dict):
    """
    Mixes a recording with an optional original clip.
    Body: { recording: base64, recordingMime, original?: base64, originalMime, params: {...} }
    Returns JSON with base64-encoded WAV, limiter report and a QC report of the mix.
    """
    session = await _run_job(_job_from_body(body))
    result = session.result
    return {
        **_audio_response(result.buffer, session.encoded),
        "peak_before_limit": result.peak_before_limit,
        "gain_applied": result.gain_applied,
        "states": [s.value for s in session.history],
        "qc": analyze(result.buffer, kind="mix"),
    }


@app.post("/effects/apply")
async def apply_effect(body: dict):
    """
    Applies one effect to a clip.
    Body: { audio: base64, mimeType, effect: { type, params } }
    """
    body = normalize_keys(body)
    request = resolve_effect(body.get("effect"))
    buffer = await pipeline.decode(decode_audio_field(body.get("audio"), "audio"), body.get("mime_type", "audio/webm"))
    processed = await pipeline.apply_effect(buffer, request)
    encoded = await pipeline.encode(processed)
    return {**_audio_response(processed, encoded), "effect": type(request).__name__}


@app.post("/trim")
async def trim(body: dict):
    """
    Trims seconds from the head and tail of a clip.
    Body: { audio: base64, mimeType, start, end }
    """
    body = normalize_keys(body)
    buffer = await pipeline.decode(decode_audio_field(body.get("audio"), "audio"), body.get("mime_type", "audio/webm"))
    trimmed = await pipeline.trim(buffer, body.get("start", 0.0), body.get("end", 0.0))
    encoded = await pipeline.encode(trimmed)
    return _audio_response(trimmed, encoded)


@app.post("/qc")
async def quality_check(body: dict):
    """
    Quality report for a recording (or a mix with kind="mix").
    """
    body = normalize_keys(body)
    buffer = await pipeline.decode(decode_audio_field(body.get("audio"), "audio"), body.get("mime_type", "audio/webm"))
    return analyze(buffer, kind=body.get("kind", "recording"))

from remix_engine.export.exporter import Exporter

@app.post("/export/remix")
async def export_remix(body: dict):
    """
    Renders a remix and returns a ZIP with the mix, per-track stems and metadata.
    """
    session = await _run_job(_job_from_body(body), with_stems=True)
    zip_bytes = Exporter.create_remix_zip(session.result, session.encoded, normalize_keys(body.get("metadata") or {}))
    return Response(
        content=zip_bytes,
        media_type="application/zip",
        headers={"Content-Disposition": "attachment; filename=remix.zip"}
    )

if __name__ == "__main__":
    uvicorn.run("remix_engine.main:app", host="0.0.0.0", port=8000, reload=config.DEV)
