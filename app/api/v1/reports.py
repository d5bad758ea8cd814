"""
API endpoints for cohort reports.
"""
import os
from typing import Any, List

from fastapi import APIRouter, Depends
from fastapi.responses import FileResponse
from sqlalchemy.orm import Session

from app.core.dependencies import get_report_compiler, get_report_registry, require_staff
from app.core.exceptions import NotFoundError
from app.core.progress import ReportCompiler, ReportJobRegistry
from app.db.base import get_db
from app.models.report import Report
from app.models.user import User
from app.schemas.common import Message
from app.schemas.report import ReportOut, ReportRequest, ReportResponse

router = APIRouter()


@router.post("/generate", response_model=ReportResponse)
def generate_report(
    body: ReportRequest,
    compiler: ReportCompiler = Depends(get_report_compiler),
    current_user: User = Depends(require_staff),
) -> Any:
    """
    Compile a cohort report and export it as CSV.
    """
    return compiler.compile(body.report_type, body.filters, generated_by=int(current_user.id))  # type: ignore


@router.get("", response_model=List[ReportOut])
def list_reports(
    limit: int = 50,
    offset: int = 0,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_staff),
) -> Any:
    """
    List reports; teachers see their own, admins see all.
    """
    query = db.query(Report)
    if current_user.role == "teacher":
        query = query.filter(Report.generated_by == current_user.id)
    return query.order_by(Report.created_at.desc(), Report.id.desc()).offset(offset).limit(limit).all()


@router.post("/{report_id}/cancel", response_model=Message)
def cancel_report(
    report_id: int,
    registry: ReportJobRegistry = Depends(get_report_registry),
    current_user: User = Depends(require_staff),
) -> Any:
    if not registry.cancel(report_id):
        raise NotFoundError("Running report")
    return Message(message=f"Cancellation requested for report {report_id}")


@router.get("/{report_id}/download")
def download_report(
    report_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_staff),
) -> Any:
    """
    Download a completed report file. Teachers may only download their own reports.
    """
    report = ReportCompiler.open_for_download(db, report_id, user=current_user)
    file_path = str(report.file_path)
    return FileResponse(file_path, media_type="text/csv", filename=os.path.basename(file_path))


@router.delete("/{report_id}", response_model=Message)
def delete_report(
    report_id: int,
    db: Session = Depends(get_db),
    compiler: ReportCompiler = Depends(get_report_compiler),
    current_user: User = Depends(require_staff),
) -> Any:
    """
    Delete a report and its file (creator or admin only).
    """
    compiler.delete(db, report_id, user=current_user)
    return Message(message="Report deleted successfully")
