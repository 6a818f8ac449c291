"""
Pytest configuration and fixtures for the course portal tests
"""

import sys
from pathlib import Path

import pytest

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from backends import InMemoryDocumentStore, InMemoryIdentityProvider  # noqa: E402
from course_storage import parse_course  # noqa: E402
from progress_tracker import ProgressTracker  # noqa: E402
from session import Notifier, SessionController  # noqa: E402


@pytest.fixture
def two_module_course_data():
    """Module A: one task chapter. Module B: one two-question quiz."""
    return {
        "id": "course-6",
        "name": "STREAM Foundations",
        "modules": [
            {
                "id": "mod-a",
                "name": "Module A",
                "chapters": [
                    {"id": "a1", "title": "Build a Lever", "type": "task", "checklist": ["Find a ruler"]},
                ],
            },
            {
                "id": "mod-b",
                "name": "Module B",
                "chapters": [
                    {
                        "id": "b1",
                        "title": "Final Quiz",
                        "type": "quiz",
                        "questions": [
                            {"q": "2 + 2?", "a": ["3", "4"], "correct": "4"},
                            {"q": "Sky colour?", "a": ["Blue", "Green"], "correct": "Blue"},
                        ],
                    },
                ],
            },
        ],
    }


@pytest.fixture
def three_module_course_data():
    """Three modules with several chapters each, quizzes last"""
    def quiz(chapter_id, n=5):
        return {
            "id": chapter_id,
            "title": f"Quiz {chapter_id}",
            "type": "quiz",
            "questions": [{"q": f"Q{i}", "a": ["right", "wrong"], "correct": "right"} for i in range(n)],
        }

    return {
        "id": "course-7",
        "name": "STREAM Explorers",
        "modules": [
            {
                "id": "m1",
                "name": "Week 1",
                "chapters": [
                    {"id": "m1c1", "title": "Intro", "type": "youtube", "videoId": "abc123"},
                    {"id": "m1c2", "title": "Reading", "type": "pdf", "url": "https://example.org/a.pdf",
                     "description": "Read this"},
                    quiz("m1q"),
                ],
            },
            {
                "id": "m2",
                "name": "Week 2",
                "chapters": [
                    {"id": "m2c1", "title": "Kit", "type": "download", "url": "https://example.org/kit.zip",
                     "fileName": "kit.zip", "description": "Get the kit"},
                    quiz("m2q"),
                ],
            },
            {
                "id": "m3",
                "name": "Week 3",
                "chapters": [
                    {"id": "m3c1", "title": "Project", "type": "task", "checklist": ["Plan", "Build"]},
                ],
            },
        ],
    }


@pytest.fixture
def course(two_module_course_data):
    return parse_course(two_module_course_data)


@pytest.fixture
def long_course(three_module_course_data):
    return parse_course(three_module_course_data)


@pytest.fixture
def tracker():
    return ProgressTracker()


class StaticCourses:
    """Course source serving parsed documents from a dict"""

    def __init__(self, documents, error=None):
        self.documents = documents
        self.error = error
        self.requests = []

    async def load_course(self, class_level):
        from errors import NotFound

        self.requests.append(class_level)
        if self.error is not None:
            raise self.error
        if class_level not in self.documents:
            raise NotFound(f"Course data not found for class {class_level}.")
        return parse_course(self.documents[class_level])


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_controller(two_module_course_data, clock):
    def factory(courses=None, tracker=None):
        return SessionController(
            InMemoryIdentityProvider(),
            InMemoryDocumentStore(),
            courses or StaticCourses({"6": two_module_course_data}),
            tracker or ProgressTracker(),
            Notifier(ttl=4.0, clock=clock),
        )

    return factory


@pytest.fixture
def team_form():
    return {
        "school_name": "Green Valley School",
        "school_location": "Pune",
        "class_level": "6",
        "team_name": "The Circuit Breakers",
        "students": ["Asha", "Ravi", "Meera"],
    }


@pytest.fixture
def static_courses():
    return StaticCourses
