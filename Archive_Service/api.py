"""
Archive API

REST routes for uploaded videos, their pose annotations, analyses and
labelled training uploads.

Run with: python -m Archive_Service.api
"""

import json
import logging
import os
from pathlib import Path
from typing import List, Optional

import uvicorn
from fastapi import APIRouter, Depends, FastAPI, File, Form, Header, HTTPException, Request, UploadFile
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from Vision_Engine import config
from Archive_Service.analysis import analyze_pose_frames
from Archive_Service.store import ArchiveStore

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024
INVALID_TYPE = "Invalid file type. Only MP4, WebM, AVI, and MOV files are allowed."


# -----------------------------------------------------------------------------
# Pydantic models
# -----------------------------------------------------------------------------

class KeypointIn(BaseModel):
    x: float
    y: float
    confidence: float


class PoseFrameIn(BaseModel):
    frame_index: int
    keypoints: List[KeypointIn]
    timestamp: float


class PoseDataIn(BaseModel):
    pose_data: List[PoseFrameIn] = Field(default_factory=list)


class TrainingLabel(BaseModel):
    frame_index: int
    keypoints: List[KeypointIn]
    technique: str
    start_frame: int
    end_frame: int


class TrainingUpload(BaseModel):
    technique: str
    difficulty: Optional[str] = None
    labels: List[TrainingLabel] = Field(default_factory=list)


# -----------------------------------------------------------------------------
# Dependencies
# -----------------------------------------------------------------------------

def get_store(request: Request) -> ArchiveStore:
    if request.app.state.store is None:
        request.app.state.store = ArchiveStore(config.ARCHIVE_DIR)
    return request.app.state.store


def get_user_id(authorization: Optional[str] = Header(None),
                x_user_id: Optional[str] = Header(None)) -> str:
    """Bearer token plus X-User-Id header. Tokens are not verified."""
    token = (authorization or "").replace("Bearer ", "", 1).strip()
    if not token:
        raise HTTPException(status_code=401, detail="No token provided")
    if not x_user_id:
        raise HTTPException(status_code=401, detail="User ID required")
    return x_user_id


def save_upload(upload: UploadFile, directory: Path, prefix: str, max_bytes: int) -> Path:
    """Stream an upload to disk, rejecting wrong types and oversized files."""
    if upload.content_type not in config.ALLOWED_VIDEO_TYPES:
        raise HTTPException(status_code=400, detail=INVALID_TYPE)

    path = directory / ArchiveStore.new_filename(prefix, upload.filename)
    written = 0
    with open(path, 'wb') as f:
        while True:
            chunk = upload.file.read(CHUNK_SIZE)
            if not chunk:
                break
            written += len(chunk)
            if written > max_bytes:
                f.close()
                path.unlink(missing_ok=True)
                raise HTTPException(status_code=413,
                                    detail=f"File too large. Limit is {max_bytes // (1024 * 1024)}MB.")
            f.write(chunk)
    return path


# -----------------------------------------------------------------------------
# Videos
# -----------------------------------------------------------------------------

videos_router = APIRouter(prefix="/api/videos", tags=["videos"])


@videos_router.post("/upload", status_code=201)
def upload_video(video: Optional[UploadFile] = File(None), duration: Optional[float] = Form(None),
                 width: Optional[int] = Form(None), height: Optional[int] = Form(None),
                 user_id: str = Depends(get_user_id), store: ArchiveStore = Depends(get_store)):
    if video is None:
        raise HTTPException(status_code=400, detail="No video file provided")

    path = save_upload(video, store.video_dir, "video", config.MAX_VIDEO_UPLOAD_BYTES)
    record = store.add_video(user_id, path.name, video.filename, str(path), path.stat().st_size,
                             duration=duration, width=width, height=height)
    logger.info("Stored video %s for user %s", record['id'], user_id)

    public = {k: record[k] for k in ('id', 'filename', 'original_name', 'file_size', 'duration',
                                      'width', 'height', 'uploaded_at')}
    return {'message': 'Video uploaded successfully', 'video': public}


@videos_router.get("")
def list_videos(user_id: str = Depends(get_user_id), store: ArchiveStore = Depends(get_store)):
    return {'videos': store.list_videos(user_id)}


@videos_router.get("/{video_id}")
def get_video(video_id: str, user_id: str = Depends(get_user_id), store: ArchiveStore = Depends(get_store)):
    video = store.get_video(user_id, video_id)
    if video is None:
        raise HTTPException(status_code=404, detail="Video not found")
    return {'video': video}


@videos_router.post("/{video_id}/pose-data")
def save_pose_data(video_id: str, body: PoseDataIn, user_id: str = Depends(get_user_id),
                   store: ArchiveStore = Depends(get_store)):
    if store.find_video(user_id, video_id) is None:
        raise HTTPException(status_code=404, detail="Video not found")
    count = store.add_pose_data(video_id, [frame.model_dump() for frame in body.pose_data])
    return {'message': 'Pose data saved successfully', 'count': count}


@videos_router.delete("/{video_id}")
def delete_video(video_id: str, user_id: str = Depends(get_user_id), store: ArchiveStore = Depends(get_store)):
    if not store.delete_video(user_id, video_id):
        raise HTTPException(status_code=404, detail="Video not found")
    return {'message': 'Video deleted successfully'}


# -----------------------------------------------------------------------------
# Analyses
# -----------------------------------------------------------------------------

analysis_router = APIRouter(prefix="/api/analysis", tags=["analysis"])


@analysis_router.post("/analyze/{video_id}")
def analyze_video(video_id: str, user_id: str = Depends(get_user_id), store: ArchiveStore = Depends(get_store)):
    if store.find_video(user_id, video_id) is None:
        raise HTTPException(status_code=404, detail="Video not found")
    frames = store.pose_frames(video_id)
    if not frames:
        raise HTTPException(status_code=400, detail="No pose data available for analysis")

    result = analyze_pose_frames(frames)
    record = store.add_analysis(user_id, video_id, result['movements'], result['risk_metrics'])
    logger.info("Analysed video %s: %d movements", video_id, len(result['movements']))
    return {'message': 'Analysis completed successfully', 'analysis': record}


@analysis_router.get("/video/{video_id}")
def list_analyses(video_id: str, user_id: str = Depends(get_user_id), store: ArchiveStore = Depends(get_store)):
    return {'analyses': store.list_analyses(user_id, video_id)}


@analysis_router.get("/{analysis_id}")
def get_analysis(analysis_id: str, user_id: str = Depends(get_user_id),
                 store: ArchiveStore = Depends(get_store)):
    record = store.get_analysis(user_id, analysis_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Analysis not found")
    return {'analysis': record}


@analysis_router.delete("/{analysis_id}")
def delete_analysis(analysis_id: str, user_id: str = Depends(get_user_id),
                    store: ArchiveStore = Depends(get_store)):
    if not store.delete_analysis(user_id, analysis_id):
        raise HTTPException(status_code=404, detail="Analysis not found")
    return {'message': 'Analysis deleted successfully'}


# -----------------------------------------------------------------------------
# Training uploads
# -----------------------------------------------------------------------------

training_router = APIRouter(prefix="/api/training", tags=["training"])


@training_router.post("/upload", status_code=201)
def upload_training_data(video: Optional[UploadFile] = File(None), technique: Optional[str] = Form(None),
                         difficulty: Optional[str] = Form(None), labels: Optional[str] = Form(None),
                         store: ArchiveStore = Depends(get_store)):
    if video is None:
        raise HTTPException(status_code=400, detail="No video file provided")

    try:
        upload = TrainingUpload(technique=technique, difficulty=difficulty, labels=json.loads(labels or "[]"))
    except (ValueError, ValidationError) as e:
        details = jsonable_encoder(e.errors()) if isinstance(e, ValidationError) else str(e)
        return JSONResponse(status_code=400,
                            content={'error': 'Invalid training data format', 'details': details})

    path = save_upload(video, store.training_dir, "video", config.MAX_TRAINING_UPLOAD_BYTES)
    record = store.add_training_data(path.name, str(path), upload.technique,
                                     [label.model_dump() for label in upload.labels],
                                     difficulty=upload.difficulty)
    public = {k: record[k] for k in ('id', 'filename', 'technique', 'difficulty', 'created_at')}
    return {'message': 'Training data uploaded successfully', 'training_data': public}


@training_router.get("")
def list_training_data(store: ArchiveStore = Depends(get_store)):
    records = [{k: r[k] for k in ('id', 'filename', 'technique', 'difficulty', 'created_at')}
               for r in store.list_training_data()]
    return {'training_data': records}


@training_router.get("/stats/overview")
def training_stats(store: ArchiveStore = Depends(get_store)):
    return store.training_stats()


@training_router.get("/technique/{technique}")
def training_by_technique(technique: str, store: ArchiveStore = Depends(get_store)):
    return {'training_data': store.list_training_data(technique)}


@training_router.get("/{record_id}")
def get_training_data(record_id: str, store: ArchiveStore = Depends(get_store)):
    record = store.get_training_data(record_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Training data not found")
    return {'training_data': record}


@training_router.delete("/{record_id}")
def delete_training_data(record_id: str, store: ArchiveStore = Depends(get_store)):
    if not store.delete_training_data(record_id):
        raise HTTPException(status_code=404, detail="Training data not found")
    return {'message': 'Training data deleted successfully'}


# -----------------------------------------------------------------------------
# App
# -----------------------------------------------------------------------------

def create_app(store: Optional[ArchiveStore] = None) -> FastAPI:
    app = FastAPI(title="Pose Studio Archive API", version="1.0.0")
    app.state.store = store

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        detail = "Route not found" if exc.status_code == 404 and exc.detail == "Not Found" else exc.detail
        return JSONResponse(status_code=exc.status_code, content={'error': detail})

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={'error': 'Invalid request format',
                                                      'details': jsonable_encoder(exc.errors())})

    @app.exception_handler(Exception)
    async def unexpected_error(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={'error': 'Something went wrong!'})

    @app.get("/api/health")
    def health():
        return {'status': 'ok', 'message': 'Pose Studio archive API is running'}

    app.include_router(videos_router)
    app.include_router(analysis_router)
    app.include_router(training_router)
    return app


app = create_app()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    uvicorn.run(app, host=os.environ.get("HOST", "0.0.0.0"), port=int(os.environ.get("PORT", 5000)))
