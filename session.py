import time
import logging
from datetime import date
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from backends import DocumentStore, IdentityProvider
from certificates import CertificateView, certificates_for, export_certificates
from errors import LMSError, NotFound, NotReady, RegistrationError, StaleNavigation
from models import Chapter, Course, ProgressRecord, School, Session, TeamAccount
from navigation import ModuleView, NavigationKind, NavigationResult, find_next, is_course_complete, open_chapter, outline
from progress_tracker import ProgressTracker
from quiz import CompletionResult, QuizAttempt, QuizOutcome, complete_chapter, submit_quiz

logger = logging.getLogger(__name__)

CLASS_LEVELS = ["5", "6", "7", "8", "9", "10"]


class Notifier:
    """Holds one message at a time and hides it after ``ttl`` seconds.

    ``display`` is called with each new message and the ttl, so a front end
    can show it as a toast that dismisses itself.
    """

    def __init__(self, ttl: float = 4.0, clock: Callable[[], float] = time.monotonic,
                 display: Optional[Callable[[str, float], None]] = None):
        self.ttl = ttl
        self.clock = clock
        self.display = display
        self._message: Optional[str] = None
        self._shown_at = 0.0

    def show(self, message: str):
        self._message = message
        self._shown_at = self.clock()
        if self.display is not None:
            self.display(message, self.ttl)

    def current(self) -> Optional[str]:
        if self._message is not None and self.clock() - self._shown_at >= self.ttl:
            self._message = None
        return self._message


@dataclass
class AppContext:
    """Everything the course actions need for the signed-in team"""
    session: Session
    team: TeamAccount
    course: Course
    progress: ProgressRecord

    @property
    def user_id(self) -> str:
        return self.session.account_id


def build_team(team_id: str, school_name: str, school_location: str, class_level: str,
               team_name: str, students: List[str]) -> TeamAccount:
    """Validate the sign-up form and build the team record"""
    students = [s.strip() for s in students]
    if not school_name.strip() or not str(class_level).strip() or not team_name.strip() \
            or not students or any(not s for s in students):
        raise RegistrationError("Please fill all fields, including all student names.")
    return TeamAccount(
        id=team_id,
        school=School(name=school_name.strip()),
        school_location=school_location.strip(),
        class_level=str(class_level),
        team_name=team_name.strip(),
        students=students,
    )


class SessionController:
    def __init__(self, identity: IdentityProvider, documents: DocumentStore, courses,
                 tracker: ProgressTracker, notifier: Optional[Notifier] = None):
        self.identity = identity
        self.documents = documents
        self.courses = courses
        self.tracker = tracker
        self.notifier = notifier or Notifier()
        self.session: Optional[Session] = None
        self.context: Optional[AppContext] = None
        self.active_chapter_id: Optional[str] = None
        self.attempts: Dict[str, QuizAttempt] = {}
        self._unsubscribe = identity.subscribe(self._on_session_change)

    def notify(self, message: str):
        logger.debug(f"Notification: {message}")
        self.notifier.show(message)

    @property
    def ready(self) -> bool:
        return self.context is not None

    def require_context(self) -> AppContext:
        if self.context is None:
            raise NotReady("Course is not loaded yet.")
        return self.context

    # --- identity ---

    async def register_team(self, email: str, password: str, school_name: str, school_location: str,
                            class_level: str, team_name: str, students: List[str]) -> bool:
        try:
            # Validate before creating the account so a bad form leaves no orphan account
            build_team("pending", school_name, school_location, class_level, team_name, students)
            account_id = await self.identity.register(email, password)
            team = build_team(account_id, school_name, school_location, class_level, team_name, students)
            await self.documents.put_team(account_id, team.to_record(), id_token=self.identity.token_for(account_id))
        except LMSError as e:
            logger.error(f"Error signing up: {e.message}")
            self.notify(e.message)
            return False

        self.notify(f'Team "{team.team_name}" registered successfully! Please log in.')
        return True

    async def login(self, email: str, password: str) -> bool:
        try:
            await self.identity.authenticate(email, password)
            return True
        except LMSError as e:
            logger.error(f"Error logging in: {e.message}")
            self.notify(e.message)
            return False

    async def logout(self) -> bool:
        try:
            await self.identity.deauthenticate()
        except LMSError as e:
            logger.error(f"Error signing out: {e.message}")
            self.notify(e.message)
            return False
        self.notify("You have been logged out.")
        return True

    async def _on_session_change(self, session: Optional[Session]):
        if session is None:
            self._teardown()
            return
        await self._establish(session)

    def _teardown(self):
        self.session = None
        self.context = None
        self.active_chapter_id = None
        self.attempts = {}

    async def _establish(self, session: Session):
        self._teardown()
        self.session = session
        try:
            team = await self.documents.get_team(session.account_id)
            if team is None:
                raise NotFound(f"No team record for account {session.account_id}")
            course = await self.courses.load_course(team.class_level)
            progress = self.tracker.get_or_init(session.account_id)
        except LMSError as e:
            logger.error(f"Failed to load course data: {e.message}")
            self.notify("Could not load course data. Please try again.")
            return
        except (OSError, ValueError) as e:
            logger.error(f"Failed to load course data: {str(e)}", exc_info=True)
            self.notify("Could not load course data. Please try again.")
            return

        self.context = AppContext(session=session, team=team, course=course, progress=progress)
        first = course.first_chapter()
        self.active_chapter_id = first.id if first else None
        logger.info(f"Session ready for team {team.team_name} on course {course.id}")

    # --- course ---

    def outline(self) -> List[ModuleView]:
        ctx = self.require_context()
        return outline(ctx.course, ctx.progress)

    def active_chapter(self) -> Optional[Chapter]:
        ctx = self.require_context()
        if self.active_chapter_id is None:
            return None
        return ctx.course.chapter(self.active_chapter_id)

    def open_chapter(self, chapter_id: str) -> Chapter:
        ctx = self.require_context()
        try:
            chapter = open_chapter(ctx.course, ctx.progress, chapter_id)
        except StaleNavigation as e:
            self.notify(e.message)
            raise
        self.active_chapter_id = chapter.id
        if chapter.is_quiz:
            self.attempts[chapter.id] = QuizAttempt(chapter.id)
        return chapter

    def complete_chapter(self, chapter_id: str) -> CompletionResult:
        ctx = self.require_context()
        try:
            result = complete_chapter(ctx.course, self.tracker, ctx.user_id, chapter_id)
        except LMSError as e:
            self.notify(e.message)
            raise
        self.notify(result.message)
        return result

    def attempt_for(self, chapter_id: str) -> QuizAttempt:
        self.require_context()
        return self.attempts.setdefault(chapter_id, QuizAttempt(chapter_id))

    def select_answer(self, chapter_id: str, question_index: int, option: str):
        self.attempt_for(chapter_id).select(question_index, option)

    def submit_quiz(self, chapter_id: str) -> QuizOutcome:
        ctx = self.require_context()
        attempt = self.attempt_for(chapter_id)
        try:
            outcome = submit_quiz(ctx.course, self.tracker, ctx.user_id, chapter_id, attempt)
        except LMSError as e:
            self.notify(e.message)
            raise
        self.notify(outcome.message)
        return outcome

    def retry_quiz(self, chapter_id: str) -> QuizAttempt:
        attempt = self.attempt_for(chapter_id)
        attempt.retry()
        return attempt

    def next_chapter(self) -> NavigationResult:
        """Advance from the active chapter, honouring the module gate"""
        ctx = self.require_context()
        if self.active_chapter_id is None:
            return NavigationResult.no_successor()

        result = find_next(ctx.course, ctx.progress, self.active_chapter_id)
        if result.kind == NavigationKind.NEXT:
            self.open_chapter(result.chapter.id)
        elif result.kind == NavigationKind.GATED:
            self.notify(f'You must complete the assignment for "{result.module.name}" to proceed.')
        elif result.kind == NavigationKind.FINISHED:
            self.notify("Congratulations! You've finished all the chapters.")
        elif result.kind == NavigationKind.COURSE_END:
            self.notify("Complete every module to finish the course.")
        else:
            logger.warning(f"No chapter after {self.active_chapter_id} in course {ctx.course.id}")
            self.notify("The next chapter is not available.")
        return result

    @property
    def course_complete(self) -> bool:
        return self.ready and is_course_complete(self.context.course, self.context.progress)

    # --- certificates ---

    def certificates(self, issued_on: Optional[date] = None) -> List[CertificateView]:
        ctx = self.require_context()
        return certificates_for(ctx.team, ctx.course, ctx.progress, issued_on)

    def export_certificates(self, output_dir: str, issued_on: Optional[date] = None) -> str:
        return export_certificates(self.certificates(issued_on), output_dir)

    def close(self):
        self._unsubscribe()
