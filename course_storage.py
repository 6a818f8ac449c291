import os
import json
import logging
from typing import Dict, Any, List, Optional

import httpx
from pydantic import ValidationError

from errors import BackendUnavailable, CourseFormatError, NotFound
from models import Course

logger = logging.getLogger(__name__)


def parse_course(course_data: Dict[str, Any]) -> Course:
    """Validate a raw course document, keeping module and chapter order"""
    if not isinstance(course_data, dict):
        raise CourseFormatError("Course data must be a JSON object")
    try:
        return Course.model_validate(course_data)
    except ValidationError as e:
        raise CourseFormatError(f"Invalid course document: {e}") from e


class CourseStorage:
    """Course documents stored on disk as ``{class_level}.json``"""

    def __init__(self, storage_dir: str = "courses"):
        self.storage_dir = storage_dir

    def _get_course_file(self, class_level: str) -> str:
        return os.path.join(self.storage_dir, f"{class_level}.json")

    async def load_course(self, class_level: str) -> Course:
        """Load the course for a class level"""
        file_path = self._get_course_file(str(class_level))
        if not os.path.exists(file_path):
            logger.error(f"Course data not found for class {class_level}: {file_path}")
            raise NotFound(f"Course data not found for class {class_level}.")

        try:
            with open(file_path, 'r', encoding='utf-8') as f:
                course_data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Error reading course file {file_path}: {str(e)}")
            raise CourseFormatError(f"Could not read course data for class {class_level}.") from e

        course = parse_course(course_data)
        logger.info(f"Course loaded successfully: {course.id} (class {class_level})")
        return course

    def list_class_levels(self) -> List[str]:
        """Class levels that have a course document"""
        if not os.path.isdir(self.storage_dir):
            return []
        levels = [name[:-5] for name in os.listdir(self.storage_dir) if name.endswith('.json')]
        return sorted(levels, key=lambda v: (not v.isdigit(), int(v) if v.isdigit() else 0, v))


class HttpCourseSource:
    """Course documents served as static files, e.g. ``https://host/6.json``"""

    def __init__(self, base_url: str, timeout: float = 10.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self._transport = transport

    async def load_course(self, class_level: str) -> Course:
        url = f"{self.base_url}/{class_level}.json"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.get(url)
        except httpx.RequestError as e:
            logger.error(f"Error fetching course {url}: {str(e)}")
            raise BackendUnavailable("Could not load course data. Please try again.") from e

        if response.status_code == 404:
            raise NotFound(f"Course data not found for class {class_level}.")
        if response.status_code != 200:
            logger.error(f"Unexpected status {response.status_code} fetching {url}")
            raise BackendUnavailable("Could not load course data. Please try again.")

        try:
            course_data = response.json()
        except ValueError as e:
            raise CourseFormatError(f"Course data for class {class_level} is not valid JSON.") from e

        course = parse_course(course_data)
        logger.info(f"Course fetched successfully: {course.id} from {url}")
        return course
