from app.models.lesson_migration import LessonMigration
from app.models.migration import Migration

__all__ = ["Migration", "LessonMigration"]
