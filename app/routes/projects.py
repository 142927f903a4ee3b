import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..auth.security import get_current_user, require_admin
from ..db import get_db
from ..models.models import Project, User
from ..schemas.projects import (
    ProjectCreate,
    ProjectOverview,
    ProjectPatch,
    ProjectResponse,
    StagesUpdate,
)
from ..services import projects as svc
from ..services.catalog import Catalog, get_catalog
from ..services.store import Store


router = APIRouter(prefix="/projects", tags=["projects"])


def _visible_project(db: Session, project_id: uuid.UUID, user: User) -> Project:
    project = Store(db).get(Project, project_id)
    if not svc.can_view(user, project):
        raise HTTPException(status_code=403, detail="Forbidden")
    return project


@router.get("", response_model=List[ProjectResponse])
def list_projects(
    status: Optional[str] = None,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    q = svc.scope_projects(db, user)
    if status:
        q = q.filter(Project.status == status)
    return q.order_by(Project.created_at.desc()).all()


@router.get("/stats/overview", response_model=ProjectOverview)
def projects_overview(db: Session = Depends(get_db), user: User = Depends(require_admin)):
    return svc.project_overview(svc.scope_projects(db, user).all())


@router.get("/customer/{customer_id}", response_model=List[ProjectResponse])
def customer_projects(customer_id: uuid.UUID, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    if user.role == "CUSTOMER" and user.id != customer_id:
        raise HTTPException(status_code=403, detail="Forbidden")
    return (
        svc.scope_projects(db, user)
        .filter(Project.client_id == customer_id)
        .order_by(Project.created_at.desc())
        .all()
    )


@router.post("", response_model=ProjectResponse, status_code=201)
def create_project(
    payload: ProjectCreate,
    db: Session = Depends(get_db),
    user: User = Depends(require_admin),
    catalog: Catalog = Depends(get_catalog),
):
    data = payload.model_dump()
    if payload.stages is not None:
        data["stages"] = [s.model_dump() for s in payload.stages]
    return svc.create_project(db, data, catalog.stages, actor=user)


@router.get("/{project_id}", response_model=ProjectResponse)
def get_project(project_id: uuid.UUID, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return _visible_project(db, project_id, user)


@router.patch("/{project_id}", response_model=ProjectResponse)
def update_project(
    project_id: uuid.UUID,
    payload: ProjectPatch,
    db: Session = Depends(get_db),
    user: User = Depends(require_admin),
):
    return svc.update_project(db, project_id, payload, actor=user)


@router.put("/{project_id}/stages", response_model=ProjectResponse)
def update_stages(
    project_id: uuid.UUID,
    payload: StagesUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(require_admin),
):
    return svc.update_stages(db, project_id, [s.model_dump() for s in payload.stages], actor=user)


@router.delete("/{project_id}")
def delete_project(project_id: uuid.UUID, db: Session = Depends(get_db), user: User = Depends(require_admin)):
    svc.delete_project(db, project_id, actor=user)
    return {"status": "ok"}
