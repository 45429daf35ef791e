"""
Todo Service - staff tasks, optionally tied to donors
"""

import logging
from datetime import datetime
from typing import Optional, List, Dict, Any
from sqlalchemy.orm import Session, joinedload

from database.models import Todo, Donor, Staff
from .base import BaseService
from ..errors import CRMError, ErrorCode, not_found
from ..models import TodoCreate, TodoUpdate, TodoResponse, TodoStatus, TodoPriority
from ..utils.donor_name_formatter import format_donor_name

logger = logging.getLogger(__name__)

PREDICTED_ACTION = "PREDICTED_ACTION"


class TodoService(BaseService):
    """Todo CRUD and grouping."""

    def _to_response(self, todo: Todo) -> TodoResponse:
        response = TodoResponse.model_validate(todo)
        response.donor_name = format_donor_name(todo.donor) if todo.donor else None
        return response

    def _get_todo(self, db: Session, organization_id: str, todo_id: int) -> Todo:
        todo = (
            db.query(Todo)
            .options(joinedload(Todo.donor))
            .filter(Todo.id == todo_id, Todo.organization_id == organization_id)
            .first()
        )
        if not todo:
            raise not_found("Todo")
        return todo

    def _check_refs(
        self, db: Session, organization_id: str, donor_id: Optional[int], staff_id: Optional[int]
    ):
        if donor_id is not None:
            if not db.query(Donor.id).filter(Donor.id == donor_id, Donor.organization_id == organization_id).first():
                raise CRMError(ErrorCode.BAD_REQUEST, "Donor not found in this organization")
        if staff_id is not None:
            if not db.query(Staff.id).filter(Staff.id == staff_id, Staff.organization_id == organization_id).first():
                raise CRMError(ErrorCode.BAD_REQUEST, "Staff member not found in this organization")

    @staticmethod
    def _apply_update(todo: Todo, values: Dict[str, Any]):
        for key, value in values.items():
            if isinstance(value, (TodoStatus, TodoPriority)):
                value = value.value
            setattr(todo, key, value)
        if values.get("status") == TodoStatus.COMPLETED:
            todo.completed_date = datetime.utcnow()

    # =========================================================================
    # CRUD
    # =========================================================================

    def create(self, organization_id: str, data: TodoCreate) -> TodoResponse:
        db = self._get_db()
        try:
            self._check_refs(db, organization_id, data.donor_id, data.staff_id)
            values = data.model_dump()
            values["priority"] = data.priority.value
            todo = Todo(organization_id=organization_id, status=TodoStatus.PENDING.value, **values)
            db.add(todo)
            db.commit()
            logger.info(f"Created todo {todo.id} ({todo.type}) in organization {organization_id}")
            return self._to_response(self._get_todo(db, organization_id, todo.id))
        finally:
            self._close_db(db)

    def create_from_predicted_actions(
        self, organization_id: str, donor_id: int, actions: List[Dict[str, Any]]
    ) -> List[TodoResponse]:
        """
        Turn predicted next actions for a donor into PENDING todos.

        Each action carries type, description and optionally
        scheduled_date, explanation and instruction.
        """
        db = self._get_db()
        try:
            self._check_refs(db, organization_id, donor_id, None)
            todos = []
            for action in actions:
                scheduled = action.get("scheduled_date")
                if isinstance(scheduled, str):
                    scheduled = datetime.fromisoformat(scheduled)
                todo = Todo(
                    organization_id=organization_id,
                    donor_id=donor_id,
                    title=action["type"],
                    description=action.get("description", ""),
                    type=PREDICTED_ACTION,
                    status=TodoStatus.PENDING.value,
                    priority=TodoPriority.MEDIUM.value,
                    scheduled_date=scheduled,
                    explanation=action.get("explanation"),
                    instruction=action.get("instruction"),
                )
                db.add(todo)
                todos.append(todo)
            db.commit()
            return [self._to_response(self._get_todo(db, organization_id, t.id)) for t in todos]
        finally:
            self._close_db(db)

    def update(self, organization_id: str, todo_id: int, data: TodoUpdate) -> TodoResponse:
        db = self._get_db()
        try:
            todo = self._get_todo(db, organization_id, todo_id)
            values = data.model_dump(exclude_unset=True)
            self._check_refs(db, organization_id, values.get("donor_id"), values.get("staff_id"))
            self._apply_update(todo, values)
            db.commit()
            db.expire_all()
            return self._to_response(self._get_todo(db, organization_id, todo_id))
        finally:
            self._close_db(db)

    def update_many(self, organization_id: str, todo_ids: List[int], data: TodoUpdate) -> int:
        """Apply the same update to many todos. Returns the number updated."""
        if not todo_ids or len(todo_ids) > 100:
            raise CRMError(ErrorCode.BAD_REQUEST, "Between 1 and 100 todo IDs are required")

        db = self._get_db()
        try:
            values = data.model_dump(exclude_unset=True)
            self._check_refs(db, organization_id, values.get("donor_id"), values.get("staff_id"))
            todos = (
                db.query(Todo)
                .filter(Todo.organization_id == organization_id, Todo.id.in_(todo_ids))
                .all()
            )
            for todo in todos:
                self._apply_update(todo, values)
            db.commit()
            logger.info(f"Bulk updated {len(todos)} todos")
            return len(todos)
        finally:
            self._close_db(db)

    def delete(self, organization_id: str, todo_id: int) -> bool:
        db = self._get_db()
        try:
            db.delete(self._get_todo(db, organization_id, todo_id))
            db.commit()
            return True
        finally:
            self._close_db(db)

    def get_by_id(self, organization_id: str, todo_id: int) -> TodoResponse:
        db = self._get_db()
        try:
            return self._to_response(self._get_todo(db, organization_id, todo_id))
        finally:
            self._close_db(db)

    # =========================================================================
    # Queries
    # =========================================================================

    def list(
        self,
        organization_id: str,
        type: Optional[str] = None,
        status: Optional[str] = None,
        donor_id: Optional[int] = None,
        staff_id: Optional[int] = None,
    ) -> List[TodoResponse]:
        """Todos of the organization, newest first."""
        db = self._get_db()
        try:
            query = (
                db.query(Todo)
                .options(joinedload(Todo.donor))
                .filter(Todo.organization_id == organization_id)
            )
            if type:
                query = query.filter(Todo.type == type)
            if status:
                query = query.filter(Todo.status == status)
            if donor_id is not None:
                query = query.filter(Todo.donor_id == donor_id)
            if staff_id is not None:
                query = query.filter(Todo.staff_id == staff_id)

            todos = query.order_by(Todo.created_at.desc(), Todo.id.desc()).all()
            return [self._to_response(t) for t in todos]
        finally:
            self._close_db(db)

    def get_by_donor(self, organization_id: str, donor_id: int) -> List[TodoResponse]:
        return self.list(organization_id, donor_id=donor_id)

    def get_by_staff(self, organization_id: str, staff_id: int) -> List[TodoResponse]:
        return self.list(organization_id, staff_id=staff_id)

    def get_grouped_by_type(
        self, organization_id: str, exclude_statuses: Optional[List[str]] = None
    ) -> Dict[str, List[TodoResponse]]:
        """Todos grouped by type, each group newest first."""
        db = self._get_db()
        try:
            query = (
                db.query(Todo)
                .options(joinedload(Todo.donor))
                .filter(Todo.organization_id == organization_id)
            )
            if exclude_statuses:
                query = query.filter(Todo.status.notin_(exclude_statuses))

            groups: Dict[str, List[TodoResponse]] = {}
            for todo in query.order_by(Todo.type, Todo.created_at.desc(), Todo.id.desc()).all():
                groups.setdefault(todo.type, []).append(self._to_response(todo))
            return groups
        finally:
            self._close_db(db)


def get_todo_service(db: Optional[Session] = None) -> TodoService:
    """Get todo service instance."""
    return TodoService(db)
