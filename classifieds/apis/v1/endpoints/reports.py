import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from classifieds import crud, schemas, models
from classifieds.database import get_db
from classifieds.dependencies import get_current_profile, get_current_admin

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("", response_model=schemas.ReportResponse, status_code=status.HTTP_201_CREATED)
def create_report(
    report_in: schemas.ReportCreate,
    db: Session = Depends(get_db),
    profile: models.Profile = Depends(get_current_profile),
) -> Any:
    report = crud.create_report(db, profile.id, report_in)
    logger.info("Report %s filed by %s", report.id, profile.id)
    return {"report": report}


@router.get("", response_model=schemas.ReportPage)
def read_reports(
    report_status: models.ReportStatusEnum = Query(models.ReportStatusEnum.pending, alias="status"),
    limit: int = Query(1000, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    admin: models.Profile = Depends(get_current_admin),
) -> Any:
    reports, total = crud.get_reports(db, report_status, limit=limit, offset=offset)
    return {"reports": reports, "total": total}


@router.put("/{report_id}", response_model=schemas.ReportResponse)
def update_report(
    report_id: int,
    report_in: schemas.ReportUpdate,
    db: Session = Depends(get_db),
    admin: models.Profile = Depends(get_current_admin),
) -> Any:
    report = crud.resolve_report(db, report_id, admin.id, report_in)
    if not report:
        raise HTTPException(status_code=404, detail="Report not found")
    logger.info("Report %s marked %s by admin %s", report.id, report.status.value, admin.id)
    return {"report": report}
