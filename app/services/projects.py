import uuid
from typing import List, Optional, Tuple

from slugify import slugify
from sqlalchemy.orm import Session

from ..errors import InvalidAmount
from ..models.models import Project, User
from .audit import compute_diff, create_audit_log
from .catalog import StageTemplate
from .store import Store

STAGE_STATUSES = ("PENDING", "IN_PROGRESS", "COMPLETED")


def summarize_stages(stages: List[dict]) -> Tuple[int, str]:
    """
    (progress %, project status) derived from stage statuses.

    PLANNING by default, STRUCTURE once any stage is in progress, FINISHING
    once more than three stages are completed, COMPLETED when all are.
    """
    if not stages:
        return 0, "PLANNING"
    completed = sum(1 for s in stages if s.get("status") == "COMPLETED")
    progress = round(completed / len(stages) * 100)
    status = "PLANNING"
    if any(s.get("status") == "IN_PROGRESS" for s in stages):
        status = "STRUCTURE"
    if completed > 3:
        status = "FINISHING"
    if completed == len(stages):
        status = "COMPLETED"
    return progress, status


def scope_projects(db: Session, user: User):
    """Customers see their own projects, admins those assigned to them, super admins everything."""
    q = db.query(Project)
    if user.role == "CUSTOMER":
        q = q.filter(Project.client_id == user.id)
    elif user.role == "ADMIN":
        q = q.filter(Project.assigned_admin_id == user.id)
    return q


def can_view(user: User, project: Project) -> bool:
    if user.role == "SUPER_ADMIN":
        return True
    if user.role == "CUSTOMER":
        return project.client_id == user.id
    return project.assigned_admin_id == user.id or project.created_by_id == user.id


def _next_code(db: Session) -> str:
    count = db.query(Project).count()
    while True:
        count += 1
        code = f"DS-{count:04d}"
        if not db.query(Project.id).filter(Project.code == code).first():
            return code


def create_project(db: Session, data: dict, stages: StageTemplate, actor: Optional[User] = None) -> Project:
    if (data.get("budget") or 0) < 0:
        raise InvalidAmount("budget", data.get("budget"), "budget must not be negative")
    data = dict(data)
    stage_list = data.pop("stages", None) or stages.as_stages()
    progress, status = summarize_stages(stage_list)
    store = Store(db)
    with store.transaction():
        if data.get("client_id") and not data.get("client_name"):
            client = store.find(User, data["client_id"])
            if client is not None:
                data["client_name"] = client.name
                data["client_phone"] = data.get("client_phone") or client.phone
        project = store.create(
            Project,
            code=_next_code(db),
            slug=slugify(data["name"]),
            stages=stage_list,
            progress=progress,
            status=data.pop("status", None) or status,
            spent=0.0,
            assigned_admin_id=data.pop("assigned_admin_id", None) or (actor.id if actor else None),
            created_by_id=actor.id if actor else None,
            **data,
        )
        create_audit_log(
            db,
            entity_type="project",
            entity_id=project.id,
            action="CREATE",
            actor_id=actor.id if actor else None,
            actor_role=actor.role if actor else None,
            context={"budget": project.budget},
        )
    return project


def update_project(db: Session, project_id: uuid.UUID, patch, actor: Optional[User] = None) -> Project:
    """ProjectPatch never carries spent/progress; those are derived."""
    fields = patch.model_dump(exclude_unset=True)
    if fields.get("budget") is not None and fields["budget"] < 0:
        raise InvalidAmount("budget", fields["budget"], "budget must not be negative")
    store = Store(db)
    with store.transaction():
        project = store.get(Project, project_id)
        if "name" in fields and fields["name"]:
            fields["slug"] = slugify(fields["name"])
        before = {key: getattr(project, key) for key in fields}
        store.update(project, **fields)
        create_audit_log(
            db,
            entity_type="project",
            entity_id=project.id,
            action="UPDATE",
            actor_id=actor.id if actor else None,
            actor_role=actor.role if actor else None,
            changes_json=compute_diff(before, fields),
        )
    return project


def update_stages(db: Session, project_id: uuid.UUID, stages: List[dict], actor: Optional[User] = None) -> Project:
    progress, status = summarize_stages(stages)
    store = Store(db)
    with store.transaction():
        project = store.get(Project, project_id)
        store.update(project, stages=stages, progress=progress, status=status)
        create_audit_log(
            db,
            entity_type="project",
            entity_id=project.id,
            action="STAGES",
            actor_id=actor.id if actor else None,
            actor_role=actor.role if actor else None,
            context={"progress": progress, "status": status},
        )
    return project


def delete_project(db: Session, project_id: uuid.UUID, actor: Optional[User] = None) -> None:
    store = Store(db)
    with store.transaction():
        project = store.get(Project, project_id)
        create_audit_log(
            db,
            entity_type="project",
            entity_id=project.id,
            action="DELETE",
            actor_id=actor.id if actor else None,
            actor_role=actor.role if actor else None,
        )
        store.delete(project)


def project_overview(projects: List[Project]) -> dict:
    return {
        "total_projects": len(projects),
        "active_projects": sum(1 for p in projects if p.status != "COMPLETED"),
        "completed_projects": sum(1 for p in projects if p.status == "COMPLETED"),
        "total_budget": sum(p.budget or 0.0 for p in projects),
        "total_spent": sum(p.spent or 0.0 for p in projects),
    }
