import os
import logging
from io import BytesIO
from datetime import date
from typing import List, Optional

from pydantic import BaseModel
from reportlab.lib import colors
from reportlab.lib.utils import simpleSplit
from reportlab.pdfgen import canvas

from errors import NotReady
from models import Course, ProgressRecord, TeamAccount
from navigation import is_course_complete

logger = logging.getLogger(__name__)

# One certificate per page, 4:3 landscape
PAGE_SIZE = (400, 300)
ISSUER = "STREAM Course Inc."
EXPORT_FILE_NAME = "certificates.pdf"


class CertificateView(BaseModel):
    student: str
    team_name: str
    school_name: str
    class_level: str
    course_name: str
    issued_on: str
    issuer: str = ISSUER

    @property
    def body(self) -> str:
        return (f"of {self.school_name} (Class {self.class_level}) has successfully completed "
                f"the one-month course in")


def format_issue_date(day: date) -> str:
    # d/m/yyyy, no leading zeros
    return f"{day.day}/{day.month}/{day.year}"


def build_certificates(team: TeamAccount, course_name: str, issued_on: Optional[date] = None) -> List[CertificateView]:
    """One certificate per student, in the team's student order"""
    issued = format_issue_date(issued_on or date.today())
    return [
        CertificateView(
            student=student,
            team_name=team.team_name,
            school_name=team.school.name,
            class_level=team.class_level,
            course_name=course_name,
            issued_on=issued,
        )
        for student in team.students
    ]


def certificates_for(team: TeamAccount, course: Course, progress: ProgressRecord,
                     issued_on: Optional[date] = None) -> List[CertificateView]:
    """Certificates for a team that has completed every module"""
    if not is_course_complete(course, progress):
        raise NotReady("Certificates are available once every module is complete.")
    return build_certificates(team, course.name, issued_on)


def clamp_index(certificates: List[CertificateView], index: int) -> int:
    if not certificates:
        return 0
    return max(0, min(index, len(certificates) - 1))


def _draw_certificate(pdf: canvas.Canvas, cert: CertificateView):
    width, height = PAGE_SIZE
    center = width / 2

    pdf.setStrokeColor(colors.HexColor("#FACC15"))
    pdf.setLineWidth(8)
    pdf.rect(4, 4, width - 8, height - 8)

    pdf.setFillColor(colors.HexColor("#374151"))
    pdf.setFont("Helvetica-Bold", 10)
    pdf.drawCentredString(center, height - 60, "CERTIFICATE OF COMPLETION")

    pdf.setFillColor(colors.HexColor("#64748B"))
    pdf.setFont("Helvetica", 8)
    pdf.drawCentredString(center, height - 82, "This is to certify that")

    pdf.setFillColor(colors.HexColor("#111827"))
    pdf.setFont("Times-Roman", 24)
    pdf.drawCentredString(center, height - 115, cert.student)

    pdf.setFillColor(colors.HexColor("#64748B"))
    pdf.setFont("Helvetica", 8)
    y = height - 140
    for line in simpleSplit(cert.body, "Helvetica", 8, width - 60):
        pdf.drawCentredString(center, y, line)
        y -= 11

    pdf.setFillColor(colors.HexColor("#1F2937"))
    pdf.setFont("Helvetica-Bold", 14)
    pdf.drawCentredString(center, y - 12, cert.course_name)

    pdf.setFillColor(colors.HexColor("#64748B"))
    pdf.setFont("Helvetica", 7)
    pdf.drawString(30, 30, f"Date: {cert.issued_on}")
    pdf.drawRightString(width - 30, 30, cert.issuer)


def render_pdf(certificates: List[CertificateView]) -> bytes:
    buffer = BytesIO()
    pdf = canvas.Canvas(buffer, pagesize=PAGE_SIZE)
    pdf.setTitle("Certificates")
    for cert in certificates:
        _draw_certificate(pdf, cert)
        pdf.showPage()
    pdf.save()
    buffer.seek(0)
    return buffer.read()


def export_certificates(certificates: List[CertificateView], output_dir: str) -> str:
    """Write all certificates to one PDF and return its path"""
    if not certificates:
        raise ValueError("No certificates to export")
    os.makedirs(output_dir, exist_ok=True)
    file_path = os.path.join(output_dir, EXPORT_FILE_NAME)
    with open(file_path, 'wb') as f:
        f.write(render_pdf(certificates))
    logger.info(f"Exported {len(certificates)} certificates to {file_path}")
    return file_path
