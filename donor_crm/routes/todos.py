"""
Todo routes: CRUD, bulk updates, grouping and predicted actions.
"""

from typing import Optional, List, Dict
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from database.database import get_db
from ..models import (
    TodoCreate,
    TodoUpdate,
    TodoBulkUpdate,
    TodoResponse,
    TodoStatus,
    PredictedActionsRequest,
)
from .dependencies import get_organization_id

router = APIRouter(prefix="/api/todos", tags=["Todos"])


@router.get("", response_model=List[TodoResponse])
async def list_todos(
    type: Optional[str] = None,
    status: Optional[TodoStatus] = None,
    donor_id: Optional[int] = None,
    staff_id: Optional[int] = None,
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    from ..services.todo_service import get_todo_service

    return get_todo_service(db).list(
        organization_id, type, status.value if status else None, donor_id, staff_id
    )


@router.get("/grouped", response_model=Dict[str, List[TodoResponse]])
async def get_grouped_todos(
    exclude_statuses: Optional[List[TodoStatus]] = Query(None),
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    from ..services.todo_service import get_todo_service

    excluded = [s.value for s in exclude_statuses] if exclude_statuses else None
    return get_todo_service(db).get_grouped_by_type(organization_id, excluded)


@router.post("", response_model=TodoResponse)
async def create_todo(
    data: TodoCreate,
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    from ..services.todo_service import get_todo_service

    return get_todo_service(db).create(organization_id, data)


@router.post("/predicted-actions", response_model=List[TodoResponse])
async def create_from_predicted_actions(
    data: PredictedActionsRequest,
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    from ..services.todo_service import get_todo_service

    actions = [action.model_dump() for action in data.actions]
    return get_todo_service(db).create_from_predicted_actions(organization_id, data.donor_id, actions)


@router.patch("/bulk")
async def bulk_update_todos(
    data: TodoBulkUpdate,
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    from ..services.todo_service import get_todo_service

    updated = get_todo_service(db).update_many(organization_id, data.ids, data.data)
    return {"success": True, "updated": updated}


@router.get("/{todo_id}", response_model=TodoResponse)
async def get_todo(
    todo_id: int,
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    from ..services.todo_service import get_todo_service

    return get_todo_service(db).get_by_id(organization_id, todo_id)


@router.patch("/{todo_id}", response_model=TodoResponse)
async def update_todo(
    todo_id: int,
    data: TodoUpdate,
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    from ..services.todo_service import get_todo_service

    return get_todo_service(db).update(organization_id, todo_id, data)


@router.delete("/{todo_id}")
async def delete_todo(
    todo_id: int,
    organization_id: str = Depends(get_organization_id),
    db: Session = Depends(get_db),
):
    from ..services.todo_service import get_todo_service

    get_todo_service(db).delete(organization_id, todo_id)
    return {"success": True}
