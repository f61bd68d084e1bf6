"""Goal and category endpoints.

Goals form a two-level tree: QUARTERLY goals may hang under a YEARLY goal,
nothing hangs under a QUARTERLY one. Categories attach to a goal or float free.
"""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Response
from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from src.api.deps import AuthUser, DbSession, get_owned_or_404
from src.api.models import (
    CategoryCreate,
    CategoryResponse,
    CategoryUpdate,
    GoalCreate,
    GoalResponse,
    GoalUpdate,
)
from src.db.models import Category, Goal
from src.extraction.models import GoalType

router = APIRouter()


def _check_parent(db: Session, owner_id: str, goal_type: GoalType, parent_id: str | None) -> None:
    if parent_id is None:
        return
    if goal_type != GoalType.QUARTERLY:
        raise HTTPException(status_code=400, detail="Only quarterly goals can have a parent")
    parent = db.scalar(select(Goal).where(Goal.id == parent_id, Goal.owner_id == owner_id))
    if parent is None:
        raise HTTPException(status_code=400, detail="Parent goal not found")
    if parent.type != GoalType.YEARLY:
        raise HTTPException(status_code=400, detail="Parent goal must be a yearly goal")


def _check_goal(db: Session, owner_id: str, goal_id: str | None) -> None:
    if goal_id is None:
        return
    goal = db.scalar(select(Goal).where(Goal.id == goal_id, Goal.owner_id == owner_id))
    if goal is None:
        raise HTTPException(status_code=400, detail="Goal not found")


@router.get("/api/goals", response_model=list[GoalResponse])
async def list_goals(user: AuthUser, db: DbSession) -> list[GoalResponse]:
    """All goals of the caller with their categories, oldest first."""
    goals = db.scalars(
        select(Goal)
        .where(Goal.owner_id == user.id)
        .options(selectinload(Goal.categories))
        .order_by(Goal.created_at)
    ).all()
    return [GoalResponse.model_validate(g) for g in goals]


@router.post("/api/goals", response_model=GoalResponse, status_code=201)
async def create_goal(body: GoalCreate, user: AuthUser, db: DbSession) -> GoalResponse:
    _check_parent(db, user.id, body.type, body.parent_id)

    goal = Goal(
        owner_id=user.id,
        title=body.title,
        type=body.type.value,
        parent_id=body.parent_id,
    )
    db.add(goal)
    db.commit()
    return GoalResponse.model_validate(goal)


@router.patch("/api/goals/{goal_id}", response_model=GoalResponse)
async def update_goal(
    goal_id: str, body: GoalUpdate, user: AuthUser, db: DbSession
) -> GoalResponse:
    """Change title, type or parent; the result must still fit the two-level tree."""
    goal = get_owned_or_404(db, Goal, user.id, goal_id, "Goal")
    fields = body.model_fields_set

    goal_type = body.type if body.type is not None else GoalType(goal.type)
    parent_id = body.parent_id if "parent_id" in fields else goal.parent_id
    if parent_id == goal.id:
        raise HTTPException(status_code=400, detail="A goal cannot be its own parent")
    _check_parent(db, user.id, goal_type, parent_id)
    if goal_type == GoalType.QUARTERLY:
        child = db.scalar(select(Goal.id).where(Goal.parent_id == goal.id).limit(1))
        if child is not None:
            raise HTTPException(
                status_code=400, detail="A goal with child goals must stay yearly"
            )

    if body.title is not None:
        goal.title = body.title
    goal.type = goal_type.value
    goal.parent_id = parent_id
    db.commit()
    return GoalResponse.model_validate(goal)


@router.delete("/api/goals/{goal_id}", status_code=204)
async def delete_goal(goal_id: str, user: AuthUser, db: DbSession) -> Response:
    """Delete a goal. Child goals, categories and tasks keep existing, unlinked."""
    goal = get_owned_or_404(db, Goal, user.id, goal_id, "Goal")
    db.delete(goal)
    db.commit()
    return Response(status_code=204)


@router.get("/api/categories", response_model=list[CategoryResponse])
async def list_categories(user: AuthUser, db: DbSession) -> list[CategoryResponse]:
    categories = db.scalars(
        select(Category).where(Category.owner_id == user.id).order_by(Category.name)
    ).all()
    return [CategoryResponse.model_validate(c) for c in categories]


@router.post("/api/categories", response_model=CategoryResponse, status_code=201)
async def create_category(
    body: CategoryCreate, user: AuthUser, db: DbSession
) -> CategoryResponse:
    _check_goal(db, user.id, body.goal_id)

    category = Category(owner_id=user.id, name=body.name, goal_id=body.goal_id)
    db.add(category)
    db.commit()
    return CategoryResponse.model_validate(category)


@router.patch("/api/categories/{category_id}", response_model=CategoryResponse)
async def update_category(
    category_id: str, body: CategoryUpdate, user: AuthUser, db: DbSession
) -> CategoryResponse:
    """Rename a category or move it to another goal (null detaches it)."""
    category = get_owned_or_404(db, Category, user.id, category_id, "Category")
    if body.name is not None:
        category.name = body.name
    if "goal_id" in body.model_fields_set:
        _check_goal(db, user.id, body.goal_id)
        category.goal_id = body.goal_id
    db.commit()
    return CategoryResponse.model_validate(category)


@router.delete("/api/categories/{category_id}", status_code=204)
async def delete_category(category_id: str, user: AuthUser, db: DbSession) -> Response:
    category = get_owned_or_404(db, Category, user.id, category_id, "Category")
    db.delete(category)
    db.commit()
    return Response(status_code=204)
