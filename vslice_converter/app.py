from __future__ import annotations

import os

from fastapi import FastAPI, File, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from vslice_converter.config import SUPPORTED_EXTENSIONS, load_converter_settings
from vslice_converter.errors import (
    ArchiveExtractionError,
    ConversionError,
    NoUsableFilesError,
    StageTimeoutError,
)
from vslice_converter.intake import InputFile
from vslice_converter.pipeline import OutputArchive, VSliceConverter

app = FastAPI(title="V-Slice Mod Converter API")


@app.middleware("http")
async def api_prefix_alias(request, call_next):
    """Accept both `/path` and `/api/path` for frontend compatibility."""
    if request.scope.get("path", "").startswith("/api/"):
        request.scope["path"] = request.scope["path"][4:]
    return await call_next(request)

DEFAULT_CORS_ORIGINS = "http://localhost:3000,http://127.0.0.1:3000"
CORS_ALLOWED_ORIGINS = [
    origin.strip()
    for origin in os.getenv("VSLICE_CORS_ALLOWED_ORIGINS", DEFAULT_CORS_ORIGINS).split(",")
    if origin.strip()
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Content-Disposition", "X-Conversion-Failed-Charts"],
)


@app.get("/health")
def health_check():
    return {"status": "ok"}


@app.get("/config/formats")
def supported_formats():
    settings = load_converter_settings()
    return {
        "supported_extensions": list(SUPPORTED_EXTENSIONS),
        "max_file_size_bytes": settings.max_file_size_bytes,
        "output_name": settings.output_name,
    }


def _error_status_code(exc: ConversionError) -> int:
    if isinstance(exc, NoUsableFilesError):
        return 400
    if isinstance(exc, ArchiveExtractionError):
        return 422
    if isinstance(exc, StageTimeoutError):
        return 504
    return 500


async def _read_uploads(files: list[UploadFile]) -> list[InputFile]:
    batch: list[InputFile] = []
    for upload in files:
        content = await upload.read()
        batch.append(InputFile.from_bytes(upload.filename or "", content))
    return batch


async def _convert_uploads(files: list[UploadFile]) -> OutputArchive | JSONResponse:
    batch = await _read_uploads(files)
    converter = VSliceConverter()
    try:
        return await converter.convert(batch)
    except ConversionError as exc:
        return JSONResponse(status_code=_error_status_code(exc), content=exc.to_dict())


@app.post("/convert")
async def convert_upload(files: list[UploadFile] = File(...)):
    result = await _convert_uploads(files)
    if isinstance(result, JSONResponse):
        return result

    return Response(
        content=result.content,
        media_type="application/zip",
        headers={
            "Content-Disposition": f'attachment; filename="{result.name}"',
            "X-Conversion-Failed-Charts": str(len(result.report.failed_charts)),
        },
    )


@app.post("/convert/report")
async def convert_upload_report(files: list[UploadFile] = File(...)):
    result = await _convert_uploads(files)
    if isinstance(result, JSONResponse):
        return result

    report = result.report.to_dict()
    return {
        "status": "success",
        "message": f"Packaged {len(result.entries)} files into {result.name}.",
        "warnings": report["warnings"],
        "archive": {"name": result.name, "size_bytes": result.size, "entries": list(result.entries)},
        "report": report,
    }
