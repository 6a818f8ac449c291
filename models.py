from enum import Enum
from typing import List, Dict, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class ChapterType(str, Enum):
    VIDEO = "video"
    DOCUMENT = "document"
    TASK = "task"
    DOWNLOADABLE = "downloadable"
    QUIZ = "quiz"


# Names used by older course documents
CHAPTER_TYPE_ALIASES = {
    "youtube": ChapterType.VIDEO,
    "pdf": ChapterType.DOCUMENT,
    "download": ChapterType.DOWNLOADABLE,
}


class Status(str, Enum):
    INCOMPLETE = "incomplete"
    COMPLETE = "complete"


class Question(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    prompt: str = Field(alias="q")
    options: List[str] = Field(alias="a")
    correct: str


class Chapter(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    title: str
    type: ChapterType
    description: Optional[str] = None
    video_id: Optional[str] = Field(default=None, alias="videoId")  # video
    url: Optional[str] = None  # document, downloadable
    file_name: Optional[str] = Field(default=None, alias="fileName")  # downloadable
    checklist: List[str] = []  # task
    questions: List[Question] = []  # quiz

    @field_validator("type", mode="before")
    @classmethod
    def normalize_type(cls, v):
        if isinstance(v, str):
            return CHAPTER_TYPE_ALIASES.get(v.lower(), v.lower())
        return v

    @property
    def is_quiz(self) -> bool:
        return self.type == ChapterType.QUIZ


class Module(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    chapters: List[Chapter] = []

    @property
    def last_chapter(self) -> Optional[Chapter]:
        return self.chapters[-1] if self.chapters else None


class Course(BaseModel):
    """A course document. Module and chapter order is the progression order."""
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    modules: List[Module]

    @model_validator(mode="after")
    def check_unique_ids(self):
        seen = set()
        for module in self.modules:
            for entity_id in [module.id] + [c.id for c in module.chapters]:
                if entity_id in seen:
                    raise ValueError(f"Duplicate id in course: {entity_id}")
                seen.add(entity_id)
        return self

    def module_index(self, module_id: str) -> int:
        for idx, module in enumerate(self.modules):
            if module.id == module_id:
                return idx
        raise KeyError(module_id)

    def module_of(self, chapter_id: str) -> Module:
        for module in self.modules:
            if any(c.id == chapter_id for c in module.chapters):
                return module
        raise KeyError(chapter_id)

    def chapter(self, chapter_id: str) -> Chapter:
        return next(c for c in self.module_of(chapter_id).chapters if c.id == chapter_id)

    def first_chapter(self) -> Optional[Chapter]:
        if self.modules and self.modules[0].chapters:
            return self.modules[0].chapters[0]
        return None


class ProgressRecord(BaseModel):
    """Completion ledger for one user. Missing ids are incomplete."""
    user_id: str
    statuses: Dict[str, Status] = {}

    def status(self, entity_id: str) -> Status:
        return self.statuses.get(entity_id, Status.INCOMPLETE)

    def is_complete(self, entity_id: str) -> bool:
        return self.status(entity_id) == Status.COMPLETE

    def completed_ids(self) -> List[str]:
        return [k for k, v in self.statuses.items() if v == Status.COMPLETE]


class School(BaseModel):
    name: str


class TeamAccount(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    school: School
    school_location: str = Field(default="", alias="schoolLocation")
    class_level: str = Field(alias="class")
    team_name: str = Field(alias="teamName")
    students: List[str]

    @field_validator("class_level", mode="before")
    @classmethod
    def class_as_text(cls, v):
        return str(v)

    def to_record(self) -> Dict:
        """Team record as stored in the document store (without the id)"""
        return self.model_dump(by_alias=True, exclude={"id"})


class Session(BaseModel):
    """An authenticated identity-provider session"""
    account_id: str
    email: str
    id_token: Optional[str] = None
