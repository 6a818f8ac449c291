"""
Tests for course and team models
"""

import pytest

from course_storage import parse_course
from errors import CourseFormatError
from models import ChapterType, ProgressRecord, Status, TeamAccount


class TestCourseModel:
    def test_legacy_chapter_types_are_normalized(self, long_course):
        types = [c.type for m in long_course.modules for c in m.chapters]
        assert types[0] == ChapterType.VIDEO
        assert types[1] == ChapterType.DOCUMENT
        assert long_course.chapter("m2c1").type == ChapterType.DOWNLOADABLE
        assert long_course.chapter("m2c1").file_name == "kit.zip"
        assert long_course.chapter("m1c1").video_id == "abc123"

    def test_order_is_preserved(self, long_course):
        assert [m.id for m in long_course.modules] == ["m1", "m2", "m3"]
        assert [c.id for c in long_course.modules[0].chapters] == ["m1c1", "m1c2", "m1q"]

    def test_quiz_questions_use_document_keys(self, course):
        question = course.chapter("b1").questions[0]
        assert question.prompt == "2 + 2?"
        assert question.options == ["3", "4"]
        assert question.correct == "4"

    def test_lookup_helpers(self, long_course):
        assert long_course.module_of("m2q").id == "m2"
        assert long_course.module_index("m3") == 2
        assert long_course.first_chapter().id == "m1c1"
        with pytest.raises(KeyError):
            long_course.module_of("missing")

    def test_unknown_chapter_type_rejected(self, two_module_course_data):
        two_module_course_data["modules"][0]["chapters"][0]["type"] = "hologram"
        with pytest.raises(CourseFormatError):
            parse_course(two_module_course_data)

    def test_duplicate_ids_rejected(self, two_module_course_data):
        two_module_course_data["modules"][1]["chapters"][0]["id"] = "a1"
        with pytest.raises(CourseFormatError):
            parse_course(two_module_course_data)

    def test_course_is_immutable(self, course):
        with pytest.raises(Exception):
            course.name = "Changed"


class TestProgressRecord:
    def test_absent_entry_is_incomplete(self):
        record = ProgressRecord(user_id="u1")
        assert record.status("anything") == Status.INCOMPLETE
        assert record.is_complete("anything") is False


class TestTeamAccount:
    def test_parses_stored_record(self):
        team = TeamAccount.model_validate({
            "id": "uid-1",
            "school": {"name": "Green Valley"},
            "schoolLocation": "Pune",
            "class": 6,
            "teamName": "Sparks",
            "students": ["Asha", "Ravi"],
        })
        assert team.class_level == "6"
        assert team.team_name == "Sparks"
        assert team.to_record() == {
            "school": {"name": "Green Valley"},
            "schoolLocation": "Pune",
            "class": "6",
            "teamName": "Sparks",
            "students": ["Asha", "Ravi"],
        }
