import json
from dataclasses import replace
from pathlib import Path
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from app.api.deps import get_dispatch, get_ledger, get_platform_client, get_queue_control, get_settings
from app.core.config import settings as base_settings
from app.core.errors import PlatformError
from app.main import app
from app.services.queue_control import QueueControl
from tests.utils import make_manifest


class FakePlatform:
    def __init__(self, manifest=None, fail=False):
        self.manifest = manifest or make_manifest([("Intro", ["Welcome"])])
        self.fail = fail
        self.tokens: list[str] = []

    def list_courses(self, token):
        self.tokens.append(token)
        if self.fail:
            raise PlatformError("Could not fetch courses from the platform.")
        return [{"id": "c1", "name": "Curso Python 3.0", "cover_image": None, "product_id": "p1"}]

    def get_course_sections(self, course_id, token):
        self.tokens.append(token)
        if self.fail:
            raise PlatformError("Could not fetch the course structure from the platform.")
        return self.manifest


@pytest.fixture
def env(ledger, tmp_path):
    platform = FakePlatform()
    dispatched: list[dict] = []
    celery = MagicMock()
    celery.control.inspect.return_value.active.return_value = None
    celery.control.inspect.return_value.reserved.return_value = None
    celery.control.inspect.return_value.scheduled.return_value = None
    celery.control.purge.return_value = 0
    settings = replace(base_settings, downloads_dir=str(tmp_path / "downloads"))

    app.dependency_overrides[get_ledger] = lambda: ledger
    app.dependency_overrides[get_platform_client] = lambda: platform
    app.dependency_overrides[get_dispatch] = lambda: (lambda **kw: dispatched.append(kw))
    app.dependency_overrides[get_queue_control] = lambda: QueueControl(celery, ledger)
    app.dependency_overrides[get_settings] = lambda: settings
    yield {
        "client": TestClient(app),
        "ledger": ledger,
        "platform": platform,
        "dispatched": dispatched,
        "celery": celery,
        "settings": settings,
    }
    app.dependency_overrides.clear()


AUTH = {"Authorization": "Bearer tok-123"}


def test_health(env):
    r = env["client"].get("/health")
    assert r.status_code == 200
    body = r.json()
    assert body["ok"] is True
    assert body["service"] == "api"
    assert body["db_ok"] is True


def test_list_courses_requires_a_bearer_token(env):
    assert env["client"].get("/courses").status_code == 401
    assert env["client"].get("/courses", headers={"Authorization": "Basic abc"}).status_code == 401

    r = env["client"].get("/courses", headers=AUTH)
    assert r.status_code == 200
    assert r.json()[0]["id"] == "c1"
    assert env["platform"].tokens == ["tok-123"]


def test_platform_failure_is_a_bad_gateway(env):
    env["platform"].fail = True
    r = env["client"].get("/courses", headers=AUTH)
    assert r.status_code == 502


def test_migrate_records_and_dispatches(env):
    r = env["client"].post("/courses/migrate", json={"workspaceId": "ws1", "courseId": "c1"}, headers=AUTH)
    assert r.status_code == 200
    body = r.json()
    assert body["ok"] is True
    assert body["course_name"] == "Curso Python 3.0"

    record = env["ledger"].get_migration("ws1", "c1")
    assert record.status == "downloading"
    assert record.progress == 0
    assert record.local_path == "/content/workspaces/ws1/c1"
    assert record.job_id == body["job_id"]

    [sent] = env["dispatched"]
    assert sent["task_id"] == body["job_id"]
    assert sent["kwargs"] == {"manifest": env["platform"].manifest, "workspace_id": "ws1", "course_id": "c1"}


def test_prepare_download_takes_course_from_path(env):
    r = env["client"].post("/courses/c7/prepare-download", json={"workspaceId": "ws1"}, headers=AUTH)
    assert r.status_code == 200
    assert r.json()["course_id"] == "c7"
    assert env["ledger"].get_migration("ws1", "c7") is not None


def test_migrate_rejects_missing_ids_and_bad_manifests(env):
    r = env["client"].post("/courses/migrate", json={"courseId": "c1"}, headers=AUTH)
    assert r.status_code == 400

    env["platform"].manifest = {"course": {"modules": []}}
    r = env["client"].post("/courses/migrate", json={"workspaceId": "ws1", "courseId": "c1"}, headers=AUTH)
    assert r.status_code == 400
    assert env["dispatched"] == []
    assert env["ledger"].get_migration("ws1", "c1") is None


def test_workspace_status_and_lessons(env):
    ledger = env["ledger"]
    ledger.upsert_migration("ws1", "c1", course_name="A", status="downloading", progress=48)
    ledger.upsert_migration("ws2", "c1", course_name="A", status="completed", progress=100)
    ledger.upsert_lesson_status("ws1", "c1", "0-0", "completed", "https://cdn.test/v.mp4")

    r = env["client"].get("/workspaces/ws1/status")
    assert r.status_code == 200
    body = r.json()
    assert body["workspaceId"] == "ws1"
    assert [(m["courseId"], m["status"], m["progress"]) for m in body["migrations"]] == [("c1", "downloading", 48)]

    r = env["client"].get("/workspaces/ws1/courses/c1/lessons")
    assert r.json()["lessons"] == {"0-0": {"processingStatus": "completed", "streamUrl": "https://cdn.test/v.mp4"}}


def test_catalog_is_decorated_with_lesson_status(env):
    course_dir = Path(env["settings"].downloads_dir) / "workspaces" / "ws1" / "c1"
    r = env["client"].get("/workspaces/ws1/courses/c1/catalog")
    assert r.status_code == 404

    course_dir.mkdir(parents=True)
    (course_dir / "course.json").write_text(json.dumps(make_manifest([("Intro", ["Welcome", "Setup"])])), encoding="utf-8")
    env["ledger"].upsert_lesson_status("ws1", "c1", "0-0", "processing")

    r = env["client"].get("/workspaces/ws1/courses/c1/catalog")
    assert r.status_code == 200
    lessons = r.json()["course"]["modules"][0]["lessons"]
    assert lessons[0]["processingStatus"] == "processing"
    assert lessons[1]["processingStatus"] == "idle"
    assert lessons[1]["video"]["streamUrl"] == "http://testserver/content/workspaces/ws1/c1/1_Intro/1_Setup/video.mp4"


def test_cancel_one(env):
    env["ledger"].upsert_migration("ws1", "c1", status="downloading", job_id="j1")

    r = env["client"].post("/workspaces/ws1/courses/c1/cancel")
    assert r.status_code == 200
    assert r.json()["status"] == "cancelled"
    env["celery"].control.revoke.assert_called_once_with("j1")

    assert env["client"].post("/workspaces/ws1/courses/c1/cancel").status_code == 404


def test_cancel_all(env):
    env["ledger"].upsert_migration("ws1", "c1", status="downloading")
    env["ledger"].upsert_migration("ws1", "c2", status="queued")

    r = env["client"].post("/queue/cancel-all")
    assert r.status_code == 200
    body = r.json()
    assert body["ok"] is True
    assert body["cancelledMigrations"] == 2
    assert body["revokedJobs"] == 0


def test_gallery_lists_every_downloaded_course(env):
    downloads = Path(env["settings"].downloads_dir)
    for rel, name in (("Old_Course", "Old Course"), ("workspaces/ws1/c1", "Curso Python 3.0")):
        (downloads / rel).mkdir(parents=True)
        manifest = make_manifest([("Intro", ["Welcome"])], name=name)
        (downloads / rel / "course.json").write_text(json.dumps(manifest), encoding="utf-8")
    env["ledger"].upsert_lesson_status("ws1", "c1", "0-0", "completed", "https://cdn.test/ws1/c1/video.mp4")

    r = env["client"].get("/gallery")
    assert r.status_code == 200
    courses = {c["dirName"]: c for c in r.json()}
    assert set(courses) == {"Old_Course", "workspaces/ws1/c1"}

    legacy = courses["Old_Course"]["course"]["modules"][0]["lessons"][0]
    assert legacy["processingStatus"] == "idle"
    assert legacy["video"]["streamUrl"] == "http://testserver/content/Old_Course/1_Intro/0_Welcome/video.mp4"

    published = courses["workspaces/ws1/c1"]["course"]["modules"][0]["lessons"][0]
    assert published["processingStatus"] == "completed"
    assert published["video"]["streamUrl"] == "https://cdn.test/ws1/c1/video.mp4"


def test_gallery_is_empty_before_any_download(env):
    r = env["client"].get("/gallery")
    assert r.status_code == 200
    assert r.json() == []
