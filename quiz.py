import logging
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel

from errors import CompletionRefused, InvalidQuizDefinition, StaleNavigation
from models import Course, Module, Question
from navigation import can_open_chapter, is_course_complete, module_completion_due
from progress_tracker import ProgressTracker

logger = logging.getLogger(__name__)

PASS_THRESHOLD = 80


class NavigationIntent(str, Enum):
    STAY = "stay"
    NEXT_CHAPTER = "next_chapter"
    CERTIFICATES = "certificates"


class AttemptState(str, Enum):
    UNANSWERED = "unanswered"
    SUBMITTED = "submitted"
    PASSED = "passed"
    FAILED = "failed"


def score(questions: List[Question], answers: Dict[int, str]) -> float:
    """Percentage of questions answered correctly. Unanswered counts as wrong."""
    if not questions:
        raise InvalidQuizDefinition("Quiz has no questions.")
    correct = sum(1 for idx, q in enumerate(questions) if answers.get(idx) == q.correct)
    return correct * 100 / len(questions)


def is_passing(percentage: float) -> bool:
    return percentage >= PASS_THRESHOLD


class QuizAttempt:
    """One attempt at a quiz chapter.

    unanswered -> submitted -> passed | failed; failed -> unanswered on retry.
    """

    def __init__(self, chapter_id: str):
        self.chapter_id = chapter_id
        self.answers: Dict[int, str] = {}
        self.state = AttemptState.UNANSWERED
        self.score: Optional[float] = None

    def select(self, question_index: int, option: str):
        if self.state != AttemptState.UNANSWERED:
            raise ValueError(f"Cannot change answers on a {self.state.value} attempt")
        self.answers[question_index] = option

    def submit(self, questions: List[Question]) -> float:
        if self.state != AttemptState.UNANSWERED:
            raise ValueError(f"Attempt already {self.state.value}")
        # Score first so an invalid quiz leaves the attempt untouched
        result = score(questions, self.answers)
        self.state = AttemptState.SUBMITTED
        self.score = result
        self.state = AttemptState.PASSED if is_passing(result) else AttemptState.FAILED
        return result

    def retry(self):
        if self.state != AttemptState.FAILED:
            raise ValueError(f"Only a failed attempt can be retried, this one is {self.state.value}")
        self.answers = {}
        self.score = None
        self.state = AttemptState.UNANSWERED


class CompletionResult(BaseModel):
    chapter_id: str
    chapter_completed: bool = False  # newly, by this call
    module_completed: bool = False
    course_complete: bool = False
    intent: NavigationIntent = NavigationIntent.STAY
    message: str = ""


class QuizOutcome(CompletionResult):
    score: float
    passed: bool


def sync_module_completion(course: Course, tracker: ProgressTracker, user_id: str, module: Module) -> bool:
    """Mark the module complete if its last chapter is. Returns True if newly marked."""
    progress = tracker.get_or_init(user_id)
    if module_completion_due(progress, module):
        return tracker.mark_complete(user_id, module.id)
    return False


def _check_unlocked(course: Course, tracker: ProgressTracker, user_id: str, chapter_id: str):
    if not can_open_chapter(course, tracker.get_or_init(user_id), chapter_id):
        module = course.module_of(chapter_id)
        raise StaleNavigation(f'Module "{module.name}" is locked.')


def _cascade(course: Course, tracker: ProgressTracker, user_id: str, chapter_id: str) -> Dict:
    chapter_completed = tracker.mark_complete(user_id, chapter_id)
    module = course.module_of(chapter_id)
    module_completed = sync_module_completion(course, tracker, user_id, module)
    is_last_module = course.modules[-1].id == module.id
    course_complete = is_last_module and is_course_complete(course, tracker.get_or_init(user_id))
    return {
        "chapter_completed": chapter_completed,
        "module_completed": module_completed,
        "course_complete": course_complete,
    }


def _milestone_message(effects: Dict, module: Module, chapter_id: str) -> Optional[str]:
    """Course or module completion message, shared by both completion paths"""
    if effects["course_complete"]:
        return "🎉 Congratulations! You have completed the entire course!"
    if module.last_chapter.id == chapter_id:
        return f'🎉 Module "{module.name}" complete! The next module is unlocked.'
    return None


def complete_chapter(course: Course, tracker: ProgressTracker, user_id: str, chapter_id: str) -> CompletionResult:
    """Explicit "mark as complete" for non-quiz chapters"""
    chapter = course.chapter(chapter_id)
    if chapter.is_quiz:
        raise CompletionRefused(f'"{chapter.title}" is a quiz and is completed by passing it.')
    _check_unlocked(course, tracker, user_id, chapter_id)

    effects = _cascade(course, tracker, user_id, chapter_id)
    module = course.module_of(chapter_id)
    message = _milestone_message(effects, module, chapter_id) or f'Chapter "{chapter.title}" marked as complete!'
    intent = NavigationIntent.CERTIFICATES if effects["course_complete"] else NavigationIntent.STAY
    return CompletionResult(chapter_id=chapter_id, intent=intent, message=message, **effects)


def submit_quiz(course: Course, tracker: ProgressTracker, user_id: str, chapter_id: str,
                attempt: QuizAttempt) -> QuizOutcome:
    """Score an attempt and apply the completion effects of a pass"""
    chapter = course.chapter(chapter_id)
    if not chapter.is_quiz:
        raise CompletionRefused(f'"{chapter.title}" is not a quiz.')
    if not chapter.questions:
        raise InvalidQuizDefinition(f'Quiz "{chapter.title}" has no questions.')
    _check_unlocked(course, tracker, user_id, chapter_id)

    result = attempt.submit(chapter.questions)
    shown = f"{result:.0f}%"

    if attempt.state != AttemptState.PASSED:
        logger.info(f"User {user_id} failed quiz {chapter_id} with {shown}")
        return QuizOutcome(
            chapter_id=chapter_id,
            score=result,
            passed=False,
            message=f"Quiz failed. Score: {shown}. Please review and retry.",
        )

    effects = _cascade(course, tracker, user_id, chapter_id)
    module = course.module_of(chapter_id)
    logger.info(f"User {user_id} passed quiz {chapter_id} with {shown}")

    message = _milestone_message(effects, module, chapter_id) or f"Quiz passed! Score: {shown}"
    intent = NavigationIntent.CERTIFICATES if effects["course_complete"] else NavigationIntent.NEXT_CHAPTER
    return QuizOutcome(chapter_id=chapter_id, score=result, passed=True, intent=intent, message=message, **effects)
