from __future__ import annotations

import copy
import json
from collections.abc import Iterator
from logging import getLogger
from pathlib import Path
from typing import Any

from app.services.paths import sanitize

logger = getLogger(__name__)


def decorate_manifest(
    manifest: dict[str, Any],
    lesson_statuses: dict[str, dict[str, str | None]],
    base_url: str,
) -> dict[str, Any]:
    """
    Return a copy of a course manifest with per-lesson availability:
      - lesson["processingStatus"]: idle|processing|completed|error
      - lesson["video"]["streamUrl"]: published url, else the url the object layout implies
    """
    decorated = copy.deepcopy(manifest)
    base_url = base_url.rstrip("/")
    modules = (decorated.get("course") or {}).get("modules") or []

    for m_idx, module in enumerate(modules):
        order = module.get("order") if module.get("order") is not None else m_idx
        lessons = module.get("lessons") or module.get("items") or []
        for l_idx, lesson in enumerate(lessons):
            status = lesson_statuses.get(str(lesson.get("id"))) or {}
            lesson["processingStatus"] = status.get("processingStatus") or "idle"

            video = lesson.get("video")
            if not video or not video.get("name"):
                continue
            module_dir = f"{order}_{sanitize(module.get('name'))}"
            lesson_dir = f"{l_idx}_{sanitize(lesson.get('title'))}"
            video["streamUrl"] = status.get("streamUrl") or f"{base_url}/{module_dir}/{lesson_dir}/{video['name']}"

    return decorated


def find_downloaded_courses(downloads_dir: str | Path) -> Iterator[tuple[str, dict[str, Any]]]:
    """
    Yield (prefix, course.json contents) for every course on disk:
    legacy courses directly under the downloads root, then workspaces/<ws>/<course>.
    Unreadable course.json files are logged and skipped.
    """
    root = Path(downloads_dir)
    candidates: list[tuple[str, Path]] = []
    if root.is_dir():
        candidates += [(p.name, p) for p in sorted(root.iterdir()) if p.is_dir() and p.name != "workspaces"]

    workspaces = root / "workspaces"
    if workspaces.is_dir():
        for ws in sorted(p for p in workspaces.iterdir() if p.is_dir()):
            candidates += [(f"workspaces/{ws.name}/{c.name}", c) for c in sorted(ws.iterdir()) if c.is_dir()]

    for prefix, course_dir in candidates:
        course_json = course_dir / "course.json"
        if not course_json.is_file():
            continue
        try:
            manifest = json.loads(course_json.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.error("Skipping course at %s: %s", course_dir, e)
            continue
        yield prefix, manifest
