import json

import pytest
from fastapi.testclient import TestClient

from Archive_Service.api import create_app
from Archive_Service.store import ArchiveStore
from Vision_Engine.core.keypoints import KEYPOINT_NAMES

AUTH = {'Authorization': 'Bearer test-token', 'X-User-Id': 'user-1'}
OTHER_USER = {'Authorization': 'Bearer test-token', 'X-User-Id': 'user-2'}


@pytest.fixture
def store(tmp_path):
    return ArchiveStore(tmp_path / "archive")


@pytest.fixture
def client(store):
    return TestClient(create_app(store))


def upload(client, content=b"fake-video", content_type="video/mp4", headers=AUTH, **form):
    return client.post("/api/videos/upload", headers=headers, data=form,
                       files={'video': ('clip.mp4', content, content_type)})


def keypoints(y_shift=0.0):
    return [{'x': 100.0 + i, 'y': 50.0 + 10 * i + y_shift, 'confidence': 0.9} for i in range(len(KEYPOINT_NAMES))]


def pose_frames(count):
    return [{'frame_index': i, 'keypoints': keypoints(), 'timestamp': i / 30} for i in range(count)]


def test_health(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json()['status'] == 'ok'


def test_unknown_route_is_json_404(client):
    response = client.get("/api/nothing-here")
    assert response.status_code == 404
    assert response.json() == {'error': 'Route not found'}


@pytest.mark.parametrize("headers, message", [
    ({}, "No token provided"),
    ({'Authorization': 'Bearer abc'}, "User ID required"),
])
def test_video_routes_require_auth(client, headers, message):
    response = client.get("/api/videos", headers=headers)
    assert response.status_code == 401
    assert response.json()['error'] == message


def test_upload_and_list(client, store):
    response = upload(client, duration="12.5", width="640", height="480")
    assert response.status_code == 201
    video = response.json()['video']
    assert video['original_name'] == 'clip.mp4'
    assert video['duration'] == 12.5
    assert video['width'] == 640
    assert (store.video_dir / video['filename']).exists()

    videos = client.get("/api/videos", headers=AUTH).json()['videos']
    assert [v['id'] for v in videos] == [video['id']]
    assert videos[0]['pose_frame_count'] == 0

    assert client.get("/api/videos", headers=OTHER_USER).json()['videos'] == []


def test_upload_rejects_wrong_type(client):
    response = upload(client, content_type="image/png")
    assert response.status_code == 400
    assert "Invalid file type" in response.json()['error']


def test_upload_requires_file(client):
    response = client.post("/api/videos/upload", headers=AUTH, data={'duration': '1'})
    assert response.status_code == 400
    assert response.json()['error'] == "No video file provided"


def test_upload_size_limit(client, store, monkeypatch):
    from Vision_Engine import config
    monkeypatch.setattr(config, 'MAX_VIDEO_UPLOAD_BYTES', 10)
    response = upload(client, content=b"x" * 100)
    assert response.status_code == 413
    assert list(store.video_dir.iterdir()) == []


def test_pose_data_and_video_detail(client):
    video_id = upload(client).json()['video']['id']

    response = client.post(f"/api/videos/{video_id}/pose-data", headers=AUTH,
                           json={'pose_data': pose_frames(120)})
    assert response.status_code == 200
    assert response.json()['count'] == 120

    detail = client.get(f"/api/videos/{video_id}", headers=AUTH).json()['video']
    assert len(detail['pose_data']) == 100
    assert detail['pose_data'][0]['frame_index'] == 0
    assert detail['analyses'] == []


def test_pose_data_validation(client):
    video_id = upload(client).json()['video']['id']
    response = client.post(f"/api/videos/{video_id}/pose-data", headers=AUTH,
                           json={'pose_data': [{'frame_index': 0, 'keypoints': [{'x': 1}], 'timestamp': 0}]})
    assert response.status_code == 400


def test_pose_data_for_unknown_video(client):
    response = client.post("/api/videos/missing/pose-data", headers=AUTH, json={'pose_data': []})
    assert response.status_code == 404


def test_other_users_cannot_see_video(client):
    video_id = upload(client).json()['video']['id']
    assert client.get(f"/api/videos/{video_id}", headers=OTHER_USER).status_code == 404
    assert client.delete(f"/api/videos/{video_id}", headers=OTHER_USER).status_code == 404


def test_analysis_lifecycle(client):
    video_id = upload(client).json()['video']['id']

    response = client.post(f"/api/analysis/analyze/{video_id}", headers=AUTH)
    assert response.status_code == 400

    client.post(f"/api/videos/{video_id}/pose-data", headers=AUTH, json={'pose_data': pose_frames(30)})
    first = client.post(f"/api/analysis/analyze/{video_id}", headers=AUTH).json()['analysis']
    second = client.post(f"/api/analysis/analyze/{video_id}", headers=AUTH).json()['analysis']
    assert first['movements'] == second['movements']
    assert set(first['risk_metrics']) == {'neck_exposure', 'posture_deviations', 'vulnerable_positions'}

    analyses = client.get(f"/api/analysis/video/{video_id}", headers=AUTH).json()['analyses']
    assert len(analyses) == 2

    detail = client.get(f"/api/analysis/{first['id']}", headers=AUTH).json()['analysis']
    assert detail['video']['id'] == video_id

    assert client.delete(f"/api/analysis/{first['id']}", headers=AUTH).status_code == 200
    assert client.get(f"/api/analysis/{first['id']}", headers=AUTH).status_code == 404


def test_delete_video_cascades(client, store):
    video_id = upload(client).json()['video']['id']
    client.post(f"/api/videos/{video_id}/pose-data", headers=AUTH, json={'pose_data': pose_frames(20)})
    client.post(f"/api/analysis/analyze/{video_id}", headers=AUTH)

    assert client.delete(f"/api/videos/{video_id}", headers=AUTH).status_code == 200
    assert client.get(f"/api/videos/{video_id}", headers=AUTH).status_code == 404
    assert store.pose_frames(video_id) == []
    assert store.list_analyses('user-1', video_id) == []
    assert list(store.video_dir.iterdir()) == []


def test_training_uploads(client):
    label = {'frame_index': 3, 'keypoints': keypoints(), 'technique': 'armbar', 'start_frame': 0, 'end_frame': 10}
    for technique in ['armbar', 'armbar', 'triangle']:
        response = client.post("/api/training/upload",
                               data={'technique': technique, 'difficulty': 'beginner',
                                     'labels': json.dumps([label])},
                               files={'video': ('t.webm', b"data", 'video/webm')})
        assert response.status_code == 201

    assert len(client.get("/api/training").json()['training_data']) == 3
    armbars = client.get("/api/training/technique/armbar").json()['training_data']
    assert len(armbars) == 2
    assert armbars[0]['labels'][0]['technique'] == 'armbar'

    stats = client.get("/api/training/stats/overview").json()
    assert stats['total_videos'] == 3
    assert {'technique': 'armbar', 'count': 2} in stats['techniques']

    record_id = armbars[0]['id']
    assert client.get(f"/api/training/{record_id}").status_code == 200
    assert client.delete(f"/api/training/{record_id}").status_code == 200
    assert client.get(f"/api/training/{record_id}").status_code == 404


def test_training_upload_rejects_bad_labels(client):
    response = client.post("/api/training/upload",
                           data={'technique': 'armbar', 'labels': json.dumps([{'frame_index': 'x'}])},
                           files={'video': ('t.mp4', b"data", 'video/mp4')})
    assert response.status_code == 400
    assert response.json()['error'] == 'Invalid training data format'

    response = client.post("/api/training/upload", data={'technique': 'armbar', 'labels': '{not json'},
                           files={'video': ('t.mp4', b"data", 'video/mp4')})
    assert response.status_code == 400


def test_store_persists_between_instances(tmp_path):
    root = tmp_path / "archive"
    ArchiveStore(root).add_training_data('f.mp4', str(root / 'f.mp4'), 'armbar', [])
    assert ArchiveStore(root).training_stats()['total_videos'] == 1
