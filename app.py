import logging
import tempfile
from typing import Any, Callable, Dict, List, Optional, Tuple

import gradio as gr

from backends import InMemoryDocumentStore, InMemoryIdentityProvider
from certificates import CertificateView, clamp_index
from config import Settings
from course_storage import CourseStorage, HttpCourseSource
from errors import LMSError
from firebase_backend import FirebaseIdentityProvider, FirestoreDocumentStore
from models import Chapter, ChapterType
from navigation import ModuleView, NavigationKind
from progress_tracker import ProgressTracker
from quiz import AttemptState, NavigationIntent
from session import CLASS_LEVELS, Notifier, SessionController

logger = logging.getLogger(__name__)

PAGES = ["landing", "signup", "login", "dashboard", "congratulations"]
MAX_QUESTIONS = 20


def configure_logging(settings: Settings):
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(),
            logging.FileHandler(settings.log_file)
        ]
    )


def show_toast(message: str, duration: float):
    gr.Info(message, duration=duration)


class ControllerFactory:
    """Builds one SessionController per browser session.

    Accounts, team records, course documents and progress are shared; the
    signed-in identity and the application context belong to one session.
    """

    def __init__(self, settings: Settings, display: Optional[Callable[[str, float], None]] = None):
        self.settings = settings
        self.display = display
        self.accounts: Dict[str, Dict[str, str]] = {}
        self.documents = InMemoryDocumentStore()
        if settings.courses_url:
            self.courses = HttpCourseSource(settings.courses_url)
        else:
            self.courses = CourseStorage(settings.courses_dir)
        self.tracker = ProgressTracker(settings.progress_dir)

    def __call__(self) -> SessionController:
        if self.settings.backend == "firebase":
            identity = FirebaseIdentityProvider(self.settings.firebase_api_key)
            documents = FirestoreDocumentStore(
                self.settings.firebase_project_id,
                token_provider=lambda: identity.current_session.id_token if identity.current_session else None,
            )
        else:
            identity = InMemoryIdentityProvider(self.accounts)
            documents = self.documents

        return SessionController(
            identity,
            documents,
            self.courses,
            self.tracker,
            Notifier(ttl=self.settings.notification_seconds, display=self.display),
        )


def build_controller(settings: Settings) -> SessionController:
    """Wire a single session controller to the configured backends"""
    return ControllerFactory(settings)()


# --- formatting ---

def format_outline(course_name: str, team_name: str, modules: List[ModuleView]) -> str:
    lines = [f"## {course_name}", f"Team: {team_name}", ""]
    for module in modules:
        marker = " ✅" if module.complete else ("" if module.unlocked else " 🔒 LOCKED")
        lines.append(f"### {module.name}{marker}")
        for chapter in module.chapters:
            lines.append(f"- {'✓' if chapter.complete else '•'} {chapter.title}")
    return "\n".join(lines)


def format_chapter(chapter: Chapter, complete: bool) -> str:
    """Format chapter content for display"""
    parts = [f"# {chapter.title}"]
    if chapter.type == ChapterType.VIDEO:
        parts.append(f"▶️ https://www.youtube.com/watch?v={chapter.video_id}")
    if chapter.description:
        parts.append(chapter.description)
    if chapter.type == ChapterType.TASK and chapter.checklist:
        parts.append("\n".join(f"- [ ] {item}" for item in chapter.checklist))
    if chapter.type == ChapterType.DOCUMENT and chapter.url:
        parts.append(f"[📥 DOWNLOAD PDF]({chapter.url})")
    if chapter.type == ChapterType.DOWNLOADABLE and chapter.url:
        label = (chapter.file_name or "file").upper()
        parts.append(f"[📥 DOWNLOAD {label}]({chapter.url})")
    if chapter.type == ChapterType.QUIZ:
        parts.append("Answer every question, then submit. You need 80% to pass.")
    if complete:
        parts.append("✓ Completed")
    return "\n\n".join(parts)


def too_many_questions(chapter: Chapter, max_questions: int) -> str:
    return (f"This quiz has {len(chapter.questions)} questions, but at most {max_questions} can be answered here. "
            "Please contact your course administrator.")


def format_certificate(cert: CertificateView) -> str:
    return f"""### CERTIFICATE OF COMPLETION

This is to certify that

# {cert.student}

{cert.body}

## {cert.course_name}

Date: {cert.issued_on} · {cert.issuer}
"""


# --- views ---

def page_updates(page: str) -> Tuple[Any, ...]:
    return tuple(gr.update(visible=(name == page)) for name in PAGES)


def dashboard_view(controller: SessionController, max_questions: int = MAX_QUESTIONS) -> Tuple[Any, ...]:
    """Outline, chapter picker, content, and the quiz/completion controls"""
    hidden_radios = [gr.update(visible=False, value=None) for _ in range(max_questions)]
    if not controller.ready:
        return ("Loading...", gr.update(choices=[], value=None), "Select a chapter to begin.",
                gr.update(visible=False), gr.update(visible=False), gr.update(visible=False),
                gr.update(visible=False), *hidden_radios)

    ctx = controller.context
    modules = controller.outline()
    choices = [(c.title, c.id) for m in modules for c in m.chapters]
    chapter = controller.active_chapter()
    if chapter is None:
        return (format_outline(ctx.course.name, ctx.team.team_name, modules), gr.update(choices=choices, value=None),
                "Select a chapter to begin.", gr.update(visible=False), gr.update(visible=False),
                gr.update(visible=False), gr.update(visible=controller.course_complete), *hidden_radios)

    complete = ctx.progress.is_complete(chapter.id)
    radios = hidden_radios
    submit_visible = retry_visible = False
    content = format_chapter(chapter, complete)
    if chapter.is_quiz and len(chapter.questions) > max_questions:
        logger.error(f"Quiz {chapter.id} has {len(chapter.questions)} questions, "
                     f"the page shows at most {max_questions}")
        content += "\n\n" + too_many_questions(chapter, max_questions)
    elif chapter.is_quiz:
        attempt = controller.attempt_for(chapter.id)
        unanswered = attempt.state == AttemptState.UNANSWERED
        radios = [
            gr.update(visible=unanswered, label=f"{i + 1}. {q.prompt}", choices=q.options,
                      value=attempt.answers.get(i))
            for i, q in enumerate(chapter.questions)
        ] + hidden_radios[len(chapter.questions):]
        submit_visible = unanswered
        retry_visible = attempt.state == AttemptState.FAILED
        if attempt.score is not None:
            verdict = "Excellent work! You have passed." if attempt.state == AttemptState.PASSED \
                else "Please review the module and try again."
            content += f"\n\n## Quiz Results\n\n**{attempt.score:.0f}%**\n\n{verdict}"

    return (
        format_outline(ctx.course.name, ctx.team.team_name, modules),
        gr.update(choices=choices, value=chapter.id),
        content,
        gr.update(visible=not chapter.is_quiz, value="✓ Completed" if complete else "Mark as Complete"),
        gr.update(visible=submit_visible),
        gr.update(visible=retry_visible),
        gr.update(visible=controller.course_complete),
        *radios,
    )


def status_text(controller: SessionController) -> str:
    return controller.notifier.current() or ""


# --- handlers ---

async def sign_up(controller: SessionController, email: str, password: str, school_name: str,
                  school_location: str, class_level: str, team_name: str, students_text: str) -> Tuple[str, str]:
    students = [line for line in (students_text or "").splitlines() if line.strip()] or [""]
    ok = await controller.register_team(email, password, school_name or "", school_location or "",
                                        class_level or "", team_name or "", students)
    return status_text(controller), ("login" if ok else "signup")


async def log_in(controller: SessionController, email: str, password: str) -> Tuple[str, str]:
    ok = await controller.login(email, password)
    return status_text(controller), ("dashboard" if ok else "login")


async def log_out(controller: SessionController) -> Tuple[str, str]:
    ok = await controller.logout()
    return status_text(controller), ("landing" if ok else "dashboard")


async def select_chapter(controller: SessionController, chapter_id: Optional[str]) -> str:
    if chapter_id and controller.ready and chapter_id != controller.active_chapter_id:
        try:
            controller.open_chapter(chapter_id)
        except LMSError as e:
            logger.error(f"Error opening chapter {chapter_id}: {e.message}")
    return status_text(controller)


async def mark_complete(controller: SessionController) -> str:
    try:
        chapter = controller.active_chapter()
        if chapter is not None:
            controller.complete_chapter(chapter.id)
    except LMSError as e:
        logger.error(f"Error completing chapter: {e.message}")
        controller.notify(e.message)
    return status_text(controller)


async def next_chapter(controller: SessionController) -> Tuple[str, str]:
    try:
        result = controller.next_chapter()
    except LMSError as e:
        logger.error(f"Error moving to next chapter: {e.message}")
        controller.notify(e.message)
        return status_text(controller), "dashboard"
    page = "congratulations" if result.kind == NavigationKind.FINISHED else "dashboard"
    return status_text(controller), page


async def submit_answers(controller: SessionController, *answers: Optional[str]) -> Tuple[str, str]:
    """Record the selected options and score the active quiz"""
    page = "dashboard"
    try:
        chapter = controller.active_chapter()
        if chapter is None or not chapter.is_quiz:
            return status_text(controller), page
        if len(chapter.questions) > len(answers):
            logger.error(f"Refusing quiz {chapter.id}: {len(chapter.questions)} questions, {len(answers)} answer slots")
            controller.notify(too_many_questions(chapter, len(answers)))
            return status_text(controller), page
        for idx, option in enumerate(answers[:len(chapter.questions)]):
            if option is not None:
                controller.select_answer(chapter.id, idx, option)
        outcome = controller.submit_quiz(chapter.id)
        if outcome.intent == NavigationIntent.CERTIFICATES:
            logger.info(f"Course complete for team {controller.context.team.team_name}")
    except (LMSError, ValueError) as e:
        logger.error(f"Error in submit_answers: {str(e)}")
        controller.notify(str(e))
    return status_text(controller), page


async def retry_quiz(controller: SessionController) -> str:
    try:
        chapter = controller.active_chapter()
        if chapter is not None and chapter.is_quiz:
            controller.retry_quiz(chapter.id)
    except (LMSError, ValueError) as e:
        logger.error(f"Error in retry_quiz: {str(e)}")
    return status_text(controller)


def certificate_view(controller: SessionController, index: int) -> Tuple[str, str, int]:
    if not controller.ready:
        return "", "", 0
    try:
        certs = controller.certificates()
    except LMSError as e:
        return e.message, "", 0
    index = clamp_index(certs, index)
    ctx = controller.context
    header = (f'# Congratulations, Team "{ctx.team.team_name}"!\n\n'
              f"You have successfully completed the **{ctx.course.name}** course. Here are your certificates.")
    body = format_certificate(certs[index]) if certs else ""
    return header, f"{body}\n\n{index + 1} / {len(certs)}", index


async def download_certificates(controller: SessionController) -> Tuple[str, Optional[str]]:
    try:
        path = controller.export_certificates(tempfile.mkdtemp(prefix="certificates_"))
    except (LMSError, ValueError) as e:
        logger.error(f"Error exporting certificates: {str(e)}")
        controller.notify(str(e))
        return status_text(controller), None
    return status_text(controller), path


def create_interface(new_controller: Callable[[], SessionController], max_questions: int = MAX_QUESTIONS):
    """Create the single-page Gradio interface with one controller per browser session"""
    with gr.Blocks(title="STREAM Course") as app:
        controller = gr.State(None)
        page = gr.State("landing")
        cert_index = gr.State(0)
        # Messages are shown as toasts; the last one is kept for the handlers' return values
        status = gr.State("")

        with gr.Column(visible=True) as landing:
            gr.Markdown("""
            # STREAM COURSE
            A One-Month Journey into Science, Technology, Robotics, Engineering, Arts, and Mathematics.
            """)
            with gr.Row():
                goto_signup = gr.Button("SIGN UP", variant="primary")
                goto_login = gr.Button("LOGIN")

        with gr.Column(visible=False) as signup:
            gr.Markdown("## Create Your Team Account")
            with gr.Row():
                su_email = gr.Textbox(label="Email")
                su_password = gr.Textbox(label="Password", type="password")
            with gr.Row():
                su_school = gr.Textbox(label="School Name")
                su_location = gr.Textbox(label="School Location (City/Town)")
            with gr.Row():
                su_class = gr.Dropdown(choices=CLASS_LEVELS, value="6", label="Class / Standard")
                su_team = gr.Textbox(label="Team Name", placeholder="e.g., The Circuit Breakers")
            su_students = gr.Textbox(label="Student Names (one per line)", lines=4)
            with gr.Row():
                su_back = gr.Button("← Back")
                su_submit = gr.Button("SUBMIT REGISTRATION", variant="primary")

        with gr.Column(visible=False) as login:
            gr.Markdown("## Team Login")
            li_email = gr.Textbox(label="Email")
            li_password = gr.Textbox(label="Password", type="password")
            with gr.Row():
                li_back = gr.Button("← Back")
                li_submit = gr.Button("LOGIN", variant="primary")

        with gr.Column(visible=False) as dashboard:
            with gr.Row():
                with gr.Column(scale=1):
                    outline_md = gr.Markdown("Loading...")
                    chapter_picker = gr.Dropdown(label="Chapter", choices=[], interactive=True)
                    certificate_btn = gr.Button("🎉 View Certificate 🎉", visible=False)
                    logout_btn = gr.Button("Logout", variant="stop")
                with gr.Column(scale=3):
                    content_md = gr.Markdown("Select a chapter to begin.")
                    radios = [gr.Radio(choices=[], visible=False, interactive=True) for _ in range(max_questions)]
                    with gr.Row():
                        complete_btn = gr.Button("Mark as Complete", visible=False)
                        submit_btn = gr.Button("SUBMIT ANSWERS", visible=False, variant="primary")
                        retry_btn = gr.Button("Retry Quiz", visible=False)
                        next_btn = gr.Button("Next →")

        with gr.Column(visible=False) as congratulations:
            cert_header = gr.Markdown("")
            cert_md = gr.Markdown("")
            with gr.Row():
                prev_cert = gr.Button("←")
                next_cert = gr.Button("→")
            download_btn = gr.Button("📥 Download all certificates as PDF file")
            download_file = gr.File(label="certificates.pdf", interactive=False)
            cert_back = gr.Button("← Back")

        pages = [landing, signup, login, dashboard, congratulations]
        dashboard_outputs = [outline_md, chapter_picker, content_md, complete_btn, submit_btn, retry_btn,
                             certificate_btn, *radios]
        cert_outputs = [cert_header, cert_md, cert_index]

        def show(session_controller):
            return dashboard_view(session_controller, max_questions)

        def go(target):
            return lambda: (target, *page_updates(target))

        def refresh_pages(target):
            return page_updates(target)

        def start_session():
            return new_controller()

        app.load(start_session, outputs=[controller])

        goto_signup.click(go("signup"), outputs=[page, *pages])
        goto_login.click(go("login"), outputs=[page, *pages])
        su_back.click(go("landing"), outputs=[page, *pages])
        li_back.click(go("landing"), outputs=[page, *pages])
        cert_back.click(go("dashboard"), outputs=[page, *pages]).then(show, inputs=[controller],
                                                                      outputs=dashboard_outputs)

        su_submit.click(
            sign_up,
            inputs=[controller, su_email, su_password, su_school, su_location, su_class, su_team, su_students],
            outputs=[status, page],
        ).then(refresh_pages, inputs=[page], outputs=pages)

        li_submit.click(
            log_in,
            inputs=[controller, li_email, li_password],
            outputs=[status, page],
        ).then(refresh_pages, inputs=[page], outputs=pages).then(show, inputs=[controller], outputs=dashboard_outputs)

        logout_btn.click(log_out, inputs=[controller], outputs=[status, page]) \
            .then(refresh_pages, inputs=[page], outputs=pages)

        chapter_picker.input(select_chapter, inputs=[controller, chapter_picker], outputs=[status]) \
            .then(show, inputs=[controller], outputs=dashboard_outputs)
        complete_btn.click(mark_complete, inputs=[controller], outputs=[status]) \
            .then(show, inputs=[controller], outputs=dashboard_outputs)
        next_btn.click(next_chapter, inputs=[controller], outputs=[status, page]) \
            .then(refresh_pages, inputs=[page], outputs=pages) \
            .then(show, inputs=[controller], outputs=dashboard_outputs) \
            .then(certificate_view, inputs=[controller, cert_index], outputs=cert_outputs)
        submit_btn.click(submit_answers, inputs=[controller, *radios], outputs=[status, page]) \
            .then(show, inputs=[controller], outputs=dashboard_outputs)
        retry_btn.click(retry_quiz, inputs=[controller], outputs=[status]) \
            .then(show, inputs=[controller], outputs=dashboard_outputs)

        certificate_btn.click(lambda: 0, outputs=[cert_index]).then(go("congratulations"), outputs=[page, *pages]) \
            .then(certificate_view, inputs=[controller, cert_index], outputs=cert_outputs)
        prev_cert.click(lambda i: i - 1, inputs=[cert_index], outputs=[cert_index]) \
            .then(certificate_view, inputs=[controller, cert_index], outputs=cert_outputs)
        next_cert.click(lambda i: i + 1, inputs=[cert_index], outputs=[cert_index]) \
            .then(certificate_view, inputs=[controller, cert_index], outputs=cert_outputs)
        download_btn.click(download_certificates, inputs=[controller], outputs=[status, download_file])

    return app


def main():
    settings = Settings.from_env()
    configure_logging(settings)
    factory = ControllerFactory(settings, display=show_toast)
    app = create_interface(factory, settings.max_quiz_questions)
    app.queue()
    app.launch(show_error=True)


if __name__ == "__main__":
    main()
