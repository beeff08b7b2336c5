import json

from app.services.catalog import decorate_manifest, find_downloaded_courses

BASE = "http://localhost:3000/content/workspaces/ws1/c1"


def _manifest():
    return {
        "course": {
            "name": "Curso",
            "modules": [
                {
                    "name": "Intro Module",
                    "order": 1,
                    "lessons": [
                        {"id": 10, "title": "Boas vindas!", "video": {"name": "video.mp4"}},
                        {"id": 11, "title": "Leitura", "files": []},
                    ],
                },
                {
                    "name": "Old",
                    "items": [{"id": "20", "title": "Aula 1", "video": {"name": "aula.mp4"}}],
                },
            ],
        }
    }


def test_lessons_default_to_idle_with_local_urls():
    manifest = _manifest()
    decorated = decorate_manifest(manifest, {}, BASE + "/")

    intro = decorated["course"]["modules"][0]["lessons"]
    assert intro[0]["processingStatus"] == "idle"
    assert intro[0]["video"]["streamUrl"] == f"{BASE}/1_Intro_Module/0_Boas_vindas_/video.mp4"
    assert intro[1]["processingStatus"] == "idle"
    assert "video" not in intro[1]

    # modules without an order use their position; "items" is read like "lessons"
    old = decorated["course"]["modules"][1]["items"][0]
    assert old["video"]["streamUrl"] == f"{BASE}/1_Old/0_Aula_1/aula.mp4"

    # input is untouched
    assert "processingStatus" not in manifest["course"]["modules"][0]["lessons"][0]


def test_published_lessons_use_their_stream_url():
    statuses = {
        "10": {"processingStatus": "completed", "streamUrl": "https://cdn.test/ws1/c1/1_Intro_Module/0_Boas_vindas_/video.mp4"},
        "20": {"processingStatus": "processing", "streamUrl": None},
    }

    decorated = decorate_manifest(_manifest(), statuses, BASE)

    first = decorated["course"]["modules"][0]["lessons"][0]
    assert first["processingStatus"] == "completed"
    assert first["video"]["streamUrl"].startswith("https://cdn.test/")
    old = decorated["course"]["modules"][1]["items"][0]
    assert old["processingStatus"] == "processing"
    assert old["video"]["streamUrl"].startswith(BASE)


def test_null_module_order_falls_back_to_position():
    manifest = {
        "course": {
            "name": "Curso",
            "modules": [
                {"name": "A", "order": None, "lessons": []},
                {"name": "B", "order": None, "lessons": [{"id": "1", "title": "x", "video": {"name": "v.mp4"}}]},
            ],
        }
    }

    lesson = decorate_manifest(manifest, {}, BASE)["course"]["modules"][1]["lessons"][0]

    assert lesson["video"]["streamUrl"] == f"{BASE}/1_B/0_x/v.mp4"


def test_find_downloaded_courses_scans_legacy_root_and_workspaces(tmp_path):
    def course(rel, name):
        d = tmp_path / rel
        d.mkdir(parents=True)
        (d / "course.json").write_text(json.dumps({"course": {"name": name, "modules": []}}), encoding="utf-8")

    course("Legacy_Course", "Legacy")
    course("workspaces/ws1/c1", "One")
    course("workspaces/ws2/c9", "Nine")
    (tmp_path / "half_done").mkdir()
    (tmp_path / "workspaces" / "ws1" / "broken").mkdir()
    (tmp_path / "workspaces" / "ws1" / "broken" / "course.json").write_text("{not json", encoding="utf-8")
    (tmp_path / "bridge.db").write_bytes(b"")

    found = [(prefix, data["course"]["name"]) for prefix, data in find_downloaded_courses(tmp_path)]

    assert found == [
        ("Legacy_Course", "Legacy"),
        ("workspaces/ws1/c1", "One"),
        ("workspaces/ws2/c9", "Nine"),
    ]


def test_find_downloaded_courses_without_downloads(tmp_path):
    assert list(find_downloaded_courses(tmp_path / "nothing")) == []
