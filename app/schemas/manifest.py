from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


class VideoDescriptor(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: str | None = None


class Lesson(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str | None = None
    title: str = ""
    video: VideoDescriptor | None = None

    @model_validator(mode="before")
    @classmethod
    def _coerce_id(cls, data: Any) -> Any:
        # platform ids come back as ints for some catalogs
        if isinstance(data, dict) and data.get("id") is not None:
            data = {**data, "id": str(data["id"])}
        return data


class Module(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str | None = None
    name: str = ""
    order: int | None = None
    lessons: list[Lesson] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _find_lessons(cls, data: Any) -> Any:
        """
        The platform is not consistent about where a module keeps its lessons:
        - "lessons" (most catalogs)
        - "items" (older catalogs)
        """
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if data.get("id") is not None:
            data["id"] = str(data["id"])
        if not data.get("lessons") and isinstance(data.get("items"), list):
            data["lessons"] = data["items"]
        return data


class Course(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: str
    modules: list[Module] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_name(self) -> Course:
        if not self.name.strip():
            raise ValueError("course.name must not be blank")
        return self


class CourseManifest(BaseModel):
    """The course's module/lesson tree as handed to the fetch executable."""

    model_config = ConfigDict(extra="allow")

    course: Course

    @property
    def total_lessons(self) -> int:
        return sum(len(m.lessons) for m in self.course.modules)

    def module_order(self, index: int) -> int:
        module = self.course.modules[index]
        return module.order if module.order is not None else index
