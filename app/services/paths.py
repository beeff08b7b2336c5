from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path

from app.schemas.manifest import CourseManifest

_UNSAFE_RE = re.compile(r"[^a-zA-Z0-9]")


def sanitize(s: str | None) -> str:
    """Same rule the fetch executable uses for directory names."""
    return _UNSAFE_RE.sub("_", s) if s else ""


def course_prefix(course_name: str, workspace_id: str | None, course_id: str | None) -> str:
    """
    Relative location of a course, shared by the local downloads root and the bucket:
    - workspaces/<workspaceId>/<courseId or sanitized name>
    - <sanitized name> (legacy, no workspace)
    """
    safe_name = sanitize(course_name)
    if workspace_id:
        return f"workspaces/{workspace_id}/{course_id or safe_name}"
    return safe_name


def content_path(content_url_prefix: str, course_name: str, workspace_id: str | None, course_id: str | None) -> str:
    """Where the API serves a course's local copy, e.g. /content/workspaces/ws1/c1."""
    return f"{content_url_prefix.rstrip('/')}/{course_prefix(course_name, workspace_id, course_id)}"


def output_dir(downloads_dir: str | Path, course_name: str, workspace_id: str | None, course_id: str | None) -> Path:
    return Path(downloads_dir) / course_prefix(course_name, workspace_id, course_id)


def scratch_manifest_path(scratch_dir: str | Path, course_name: str, job_id: str) -> Path:
    return Path(scratch_dir) / f"{sanitize(course_name)}_{job_id}.json"


@dataclass(frozen=True)
class LessonRef:
    module_order: int
    module_name: str
    lesson_index: int
    title: str
    lesson_id: str | None = None
    video_name: str | None = None

    @property
    def relative_dir(self) -> str:
        return f"{self.module_order}_{sanitize(self.module_name)}/{self.lesson_index}_{sanitize(self.title)}"


def lesson_refs(manifest: CourseManifest) -> list[LessonRef]:
    refs: list[LessonRef] = []
    for m_idx, module in enumerate(manifest.course.modules):
        order = manifest.module_order(m_idx)
        for l_idx, lesson in enumerate(module.lessons):
            refs.append(
                LessonRef(
                    module_order=order,
                    module_name=module.name,
                    lesson_index=l_idx,
                    title=lesson.title,
                    lesson_id=lesson.id,
                    video_name=lesson.video.name if lesson.video else None,
                )
            )
    return refs


def resolve_lesson(
    refs: list[LessonRef],
    title: str,
    module_name: str | None = None,
    seen: set[LessonRef] | frozenset[LessonRef] = frozenset(),
) -> LessonRef | None:
    """
    Map a lesson title seen in the fetcher's output back to the manifest.
    Prefers the module announced most recently; titles repeat across modules
    ("Introduction", "Aula 1", ...) so lessons already started are skipped.
    """
    candidates = [ref for ref in refs if ref not in seen]
    if module_name is not None:
        for ref in candidates:
            if ref.module_name == module_name and ref.title == title:
                return ref
    for ref in candidates:
        if ref.title == title:
            return ref
    return None
