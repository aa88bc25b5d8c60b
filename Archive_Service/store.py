"""
Archive Store

JSON-file storage for uploaded videos, their per-frame pose annotations,
analyses and labelled training uploads. Everything lives in one
`archive.json` under the archive directory; uploaded files sit next to it in
`uploads/`.
"""

import json
import logging
import threading
import uuid
from collections import Counter
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

COLLECTIONS = ('videos', 'pose_data', 'analyses', 'training_data')


def _now() -> str:
    return datetime.now().isoformat()


class ArchiveStore:
    """Thread-safe store. Records are plain dicts keyed by a hex uuid `id`."""

    def __init__(self, root: Path):
        self.root = Path(root)
        self.video_dir = self.root / "uploads" / "videos"
        self.training_dir = self.root / "uploads" / "training"
        self.video_dir.mkdir(parents=True, exist_ok=True)
        self.training_dir.mkdir(parents=True, exist_ok=True)

        self.db_path = self.root / "archive.json"
        self._lock = threading.RLock()
        self._data: Dict[str, List[Dict[str, Any]]] = {name: [] for name in COLLECTIONS}
        self._load()

    def _load(self):
        if not self.db_path.exists():
            return
        with open(self.db_path) as f:
            data = json.load(f)
        for name in COLLECTIONS:
            self._data[name] = data.get(name, [])
        logger.info("Loaded archive from %s (%d videos)", self.db_path, len(self._data['videos']))

    def _save(self):
        tmp_path = self.db_path.with_suffix(".tmp")
        with open(tmp_path, 'w') as f:
            json.dump(self._data, f, indent=2)
        tmp_path.replace(self.db_path)

    @staticmethod
    def new_filename(prefix: str, original_name: str) -> str:
        return f"{prefix}-{uuid.uuid4().hex}{Path(original_name or '').suffix}"

    # -------------------------------------------------------------------------
    # Videos
    # -------------------------------------------------------------------------

    def add_video(self, user_id: str, filename: str, original_name: str, file_path: str, file_size: int,
                  duration: Optional[float] = None, width: Optional[int] = None,
                  height: Optional[int] = None) -> Dict[str, Any]:
        video = {
            'id': uuid.uuid4().hex,
            'user_id': user_id,
            'filename': filename,
            'original_name': original_name,
            'file_path': file_path,
            'file_size': file_size,
            'duration': duration,
            'width': width,
            'height': height,
            'uploaded_at': _now()
        }
        with self._lock:
            self._data['videos'].append(video)
            self._save()
        return video

    def find_video(self, user_id: str, video_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            return next((v for v in self._data['videos']
                         if v['id'] == video_id and v['user_id'] == user_id), None)

    def list_videos(self, user_id: str) -> List[Dict[str, Any]]:
        """User's videos, newest first, with pose-frame and analysis counts."""
        with self._lock:
            frame_counts = Counter(p['video_id'] for p in self._data['pose_data'])
            analysis_counts = Counter(a['video_id'] for a in self._data['analyses'])
            videos = [dict(v, pose_frame_count=frame_counts[v['id']],
                           analysis_count=analysis_counts[v['id']])
                      for v in self._data['videos'] if v['user_id'] == user_id]
        return sorted(videos, key=lambda v: v['uploaded_at'], reverse=True)

    def get_video(self, user_id: str, video_id: str, frame_limit: int = 100,
                  analysis_limit: int = 5) -> Optional[Dict[str, Any]]:
        """Video with its first frames and latest analyses."""
        with self._lock:
            video = self.find_video(user_id, video_id)
            if video is None:
                return None
            return dict(video,
                        pose_data=self.pose_frames(video_id)[:frame_limit],
                        analyses=self.list_analyses(user_id, video_id)[:analysis_limit])

    def delete_video(self, user_id: str, video_id: str) -> bool:
        """Remove the video, its pose frames, its analyses and the uploaded file."""
        with self._lock:
            video = self.find_video(user_id, video_id)
            if video is None:
                return False
            self._data['videos'].remove(video)
            self._data['pose_data'] = [p for p in self._data['pose_data'] if p['video_id'] != video_id]
            self._data['analyses'] = [a for a in self._data['analyses'] if a['video_id'] != video_id]
            self._save()
        Path(video['file_path']).unlink(missing_ok=True)
        return True

    # -------------------------------------------------------------------------
    # Pose frames
    # -------------------------------------------------------------------------

    def add_pose_data(self, video_id: str, frames: List[Dict[str, Any]]) -> int:
        records = [{
            'id': uuid.uuid4().hex,
            'video_id': video_id,
            'frame_index': frame['frame_index'],
            'keypoints': frame['keypoints'],
            'timestamp': frame['timestamp']
        } for frame in frames]
        with self._lock:
            self._data['pose_data'].extend(records)
            self._save()
        return len(records)

    def pose_frames(self, video_id: str) -> List[Dict[str, Any]]:
        """All frames of a video ordered by frame index."""
        with self._lock:
            frames = [p for p in self._data['pose_data'] if p['video_id'] == video_id]
        return sorted(frames, key=lambda p: p['frame_index'])

    # -------------------------------------------------------------------------
    # Analyses
    # -------------------------------------------------------------------------

    def add_analysis(self, user_id: str, video_id: str, movements: List[Dict[str, Any]],
                     risk_metrics: Dict[str, Any]) -> Dict[str, Any]:
        analysis = {
            'id': uuid.uuid4().hex,
            'video_id': video_id,
            'user_id': user_id,
            'movements': movements,
            'risk_metrics': risk_metrics,
            'created_at': _now()
        }
        with self._lock:
            self._data['analyses'].append(analysis)
            self._save()
        return analysis

    def list_analyses(self, user_id: str, video_id: str) -> List[Dict[str, Any]]:
        with self._lock:
            analyses = [a for a in self._data['analyses']
                        if a['video_id'] == video_id and a['user_id'] == user_id]
        return sorted(analyses, key=lambda a: a['created_at'], reverse=True)

    def get_analysis(self, user_id: str, analysis_id: str) -> Optional[Dict[str, Any]]:
        """Analysis with a short summary of its video."""
        with self._lock:
            analysis = next((a for a in self._data['analyses']
                             if a['id'] == analysis_id and a['user_id'] == user_id), None)
            if analysis is None:
                return None
            video = next((v for v in self._data['videos'] if v['id'] == analysis['video_id']), None)
        summary = None
        if video is not None:
            summary = {'id': video['id'], 'original_name': video['original_name'],
                       'duration': video['duration']}
        return dict(analysis, video=summary)

    def delete_analysis(self, user_id: str, analysis_id: str) -> bool:
        with self._lock:
            before = len(self._data['analyses'])
            self._data['analyses'] = [a for a in self._data['analyses']
                                      if not (a['id'] == analysis_id and a['user_id'] == user_id)]
            if len(self._data['analyses']) == before:
                return False
            self._save()
        return True

    # -------------------------------------------------------------------------
    # Training uploads
    # -------------------------------------------------------------------------

    def add_training_data(self, filename: str, file_path: str, technique: str, labels: List[Dict[str, Any]],
                          difficulty: Optional[str] = None) -> Dict[str, Any]:
        record = {
            'id': uuid.uuid4().hex,
            'filename': filename,
            'file_path': file_path,
            'technique': technique,
            'difficulty': difficulty,
            'labels': labels,
            'created_at': _now()
        }
        with self._lock:
            self._data['training_data'].append(record)
            self._save()
        return record

    def list_training_data(self, technique: Optional[str] = None) -> List[Dict[str, Any]]:
        with self._lock:
            records = [r for r in self._data['training_data']
                       if technique is None or r['technique'] == technique]
        return sorted(records, key=lambda r: r['created_at'], reverse=True)

    def get_training_data(self, record_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            return next((r for r in self._data['training_data'] if r['id'] == record_id), None)

    def delete_training_data(self, record_id: str) -> bool:
        with self._lock:
            record = self.get_training_data(record_id)
            if record is None:
                return False
            self._data['training_data'].remove(record)
            self._save()
        Path(record['file_path']).unlink(missing_ok=True)
        return True

    def training_stats(self) -> Dict[str, Any]:
        with self._lock:
            counts = Counter(r['technique'] for r in self._data['training_data'])
            total = len(self._data['training_data'])
        return {
            'total_videos': total,
            'techniques': [{'technique': t, 'count': c} for t, c in sorted(counts.items())]
        }
