import pytest
from pydantic import ValidationError as PydanticValidationError

from app.schemas.manifest import CourseManifest
from app.services.paths import (
    course_prefix,
    lesson_refs,
    output_dir,
    resolve_lesson,
    sanitize,
    scratch_manifest_path,
)
from tests.utils import make_manifest


def test_sanitize_replaces_everything_outside_alnum():
    assert sanitize("Curso Python 3.0!") == "Curso_Python_3_0_"
    assert sanitize("Aula 1 - Introdução") == "Aula_1___Introdu__o"
    assert sanitize("") == ""
    assert sanitize(None) == ""


def test_course_prefix_workspace_and_legacy():
    assert course_prefix("My Course", "ws1", "c9") == "workspaces/ws1/c9"
    assert course_prefix("My Course", "ws1", None) == "workspaces/ws1/My_Course"
    assert course_prefix("My Course", None, "c9") == "My_Course"


def test_output_and_scratch_paths(tmp_path):
    assert output_dir(tmp_path, "My Course", "ws1", "c9") == tmp_path / "workspaces" / "ws1" / "c9"
    assert output_dir(tmp_path, "My Course", None, None) == tmp_path / "My_Course"
    assert scratch_manifest_path(tmp_path, "My Course", "job-7") == tmp_path / "My_Course_job-7.json"


def test_lesson_refs_follow_object_layout():
    manifest = CourseManifest.model_validate(make_manifest([("Intro", ["Welcome", "Setup"]), ("Deep Dive", ["Part 1"])]))
    refs = lesson_refs(manifest)

    assert [r.relative_dir for r in refs] == ["1_Intro/0_Welcome", "1_Intro/1_Setup", "2_Deep_Dive/0_Part_1"]
    assert refs[0].lesson_id == "0-0"
    assert refs[0].video_name == "video.mp4"


def test_module_order_defaults_to_index():
    manifest = CourseManifest.model_validate(
        {"course": {"name": "C", "modules": [{"name": "A", "lessons": [{"title": "x"}]}, {"name": "B", "items": [{"title": "y"}]}]}}
    )
    assert [r.relative_dir for r in lesson_refs(manifest)] == ["0_A/0_x", "1_B/0_y"]


def test_resolve_lesson_prefers_current_module_and_skips_seen():
    manifest = CourseManifest.model_validate(make_manifest([("A", ["Intro", "Intro"]), ("B", ["Intro"])]))
    refs = lesson_refs(manifest)

    first = resolve_lesson(refs, "Intro", "B")
    assert first.module_name == "B"

    a1 = resolve_lesson(refs, "Intro", "A")
    a2 = resolve_lesson(refs, "Intro", "A", {a1})
    assert (a1.lesson_index, a2.lesson_index) == (0, 1)

    assert resolve_lesson(refs, "Missing") is None


def test_manifest_requires_course_name():
    with pytest.raises(PydanticValidationError):
        CourseManifest.model_validate({"course": {"name": "   "}})
    with pytest.raises(PydanticValidationError):
        CourseManifest.model_validate({"modules": []})


def test_manifest_keeps_unknown_fields_and_counts_lessons():
    manifest = CourseManifest.model_validate(
        {"course": {"name": "C", "cover": "x.png", "modules": [{"name": "A", "lessons": [{"title": "a", "id": 12}]}]}, "class": []}
    )
    assert manifest.total_lessons == 1
    assert manifest.course.modules[0].lessons[0].id == "12"
    assert manifest.model_dump()["course"]["cover"] == "x.png"
