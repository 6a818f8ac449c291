import logging
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel

from errors import StaleNavigation
from models import Chapter, Course, Module, ProgressRecord

logger = logging.getLogger(__name__)


class NavigationKind(str, Enum):
    NEXT = "next"
    GATED = "gated"  # crossing into the next module before the current one is complete
    FINISHED = "finished"  # past the last chapter with every module complete
    COURSE_END = "course_end"  # past the last chapter, course not complete yet
    NO_SUCCESSOR = "no_successor"  # next module has no chapters


class NavigationResult(BaseModel):
    kind: NavigationKind
    chapter: Optional[Chapter] = None
    module: Optional[Module] = None
    reason: Optional[str] = None

    @classmethod
    def next(cls, chapter: Chapter) -> "NavigationResult":
        return cls(kind=NavigationKind.NEXT, chapter=chapter)

    @classmethod
    def gated(cls, module: Module) -> "NavigationResult":
        return cls(kind=NavigationKind.GATED, module=module, reason=StaleNavigation.reason)

    @classmethod
    def finished(cls) -> "NavigationResult":
        return cls(kind=NavigationKind.FINISHED)

    @classmethod
    def no_successor(cls, module: Optional[Module] = None) -> "NavigationResult":
        return cls(kind=NavigationKind.NO_SUCCESSOR, module=module)

    @property
    def is_terminal(self) -> bool:
        return self.kind in (NavigationKind.FINISHED, NavigationKind.COURSE_END)


class ChapterView(BaseModel):
    id: str
    title: str
    type: str
    complete: bool


class ModuleView(BaseModel):
    id: str
    name: str
    unlocked: bool
    complete: bool
    chapters: List[ChapterView] = []


def is_module_unlocked(course: Course, progress: ProgressRecord, module_index: int) -> bool:
    if module_index == 0:
        return True
    return progress.is_complete(course.modules[module_index - 1].id)


def is_module_complete(progress: ProgressRecord, module: Module) -> bool:
    return progress.is_complete(module.id)


def module_completion_due(progress: ProgressRecord, module: Module) -> bool:
    """True when the module's last chapter is complete, i.e. the module should be"""
    last = module.last_chapter
    return last is not None and progress.is_complete(last.id)


def is_course_complete(course: Course, progress: ProgressRecord) -> bool:
    return all(progress.is_complete(m.id) for m in course.modules)


def can_open_chapter(course: Course, progress: ProgressRecord, chapter_id: str) -> bool:
    module = course.module_of(chapter_id)
    return is_module_unlocked(course, progress, course.module_index(module.id))


def open_chapter(course: Course, progress: ProgressRecord, chapter_id: str) -> Chapter:
    """Return the chapter if its module is unlocked, else refuse"""
    if not can_open_chapter(course, progress, chapter_id):
        module = course.module_of(chapter_id)
        raise StaleNavigation(f'Module "{module.name}" is locked.')
    return course.chapter(chapter_id)


def find_next(course: Course, progress: ProgressRecord, chapter_id: str) -> NavigationResult:
    """Resolve what "Next" leads to from the given chapter"""
    module = course.module_of(chapter_id)
    module_idx = course.module_index(module.id)
    chapter_idx = next(i for i, c in enumerate(module.chapters) if c.id == chapter_id)

    if chapter_idx < len(module.chapters) - 1:
        return NavigationResult.next(module.chapters[chapter_idx + 1])

    if module_idx < len(course.modules) - 1:
        if not is_module_complete(progress, module):
            return NavigationResult.gated(module)
        next_module = course.modules[module_idx + 1]
        if not next_module.chapters:
            logger.warning(f"Module {next_module.id} after {module.id} has no chapters")
            return NavigationResult.no_successor(next_module)
        return NavigationResult.next(next_module.chapters[0])

    if is_course_complete(course, progress):
        return NavigationResult.finished()
    return NavigationResult(kind=NavigationKind.COURSE_END, module=module)


def outline(course: Course, progress: ProgressRecord) -> List[ModuleView]:
    """Sidebar view of the course. Locked modules list no chapters."""
    views = []
    for idx, module in enumerate(course.modules):
        unlocked = is_module_unlocked(course, progress, idx)
        chapters = []
        if unlocked:
            chapters = [
                ChapterView(id=c.id, title=c.title, type=c.type.value, complete=progress.is_complete(c.id))
                for c in module.chapters
            ]
        views.append(ModuleView(
            id=module.id,
            name=module.name,
            unlocked=unlocked,
            complete=is_module_complete(progress, module),
            chapters=chapters,
        ))
    return views
