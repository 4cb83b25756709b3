"""
Learning API Router: educational content and progress tracking.
"""
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from microinvest.api.deps import require_admin
from microinvest.core.database import get_db
from microinvest.core.security import get_current_username
from microinvest.models.enums import ContentType, DifficultyLevel, ProgressStatus
from microinvest.services.learning_service import LearningService

router = APIRouter()

# ---------- Pydantic Schemas ----------

class ContentFields(BaseModel):
    description: Optional[str] = None
    category: Optional[str] = None
    content_type: Optional[ContentType] = None
    difficulty: Optional[DifficultyLevel] = None
    url: Optional[str] = None
    duration_minutes: Optional[int] = Field(default=None, ge=0)
    author: Optional[str] = None
    tags: Optional[str] = None
    featured: Optional[bool] = None


class ContentCreate(ContentFields):
    title: str


class ContentUpdate(ContentFields):
    title: Optional[str] = None


class ContentSchema(BaseModel):
    id: int
    title: str
    description: Optional[str]
    category: Optional[str]
    content_type: ContentType
    difficulty: DifficultyLevel
    url: Optional[str]
    duration_minutes: Optional[int]
    author: Optional[str]
    tags: Optional[str]
    featured: bool
    view_count: int

    class Config:
        from_attributes = True


class ProgressUpdate(BaseModel):
    completion_percentage: int = Field(ge=0, le=100)


class RatingRequest(BaseModel):
    rating: int = Field(ge=1, le=5)


class ProgressSchema(BaseModel):
    id: int
    content_id: int
    status: ProgressStatus
    completion_percentage: int
    rating: Optional[int]
    started_at: Optional[datetime]
    finished_at: Optional[datetime]
    last_accessed_at: Optional[datetime]

    class Config:
        from_attributes = True


# ---------- Endpoints ----------

@router.get("/content", response_model=list[ContentSchema])
async def list_content(
    category: Optional[str] = None,
    difficulty: Optional[DifficultyLevel] = None,
    content_type: Optional[ContentType] = None,
    featured_only: bool = False,
    search: Optional[str] = None,
    limit: int = Query(default=50, le=200),
    _: str = Depends(get_current_username),
    db: AsyncSession = Depends(get_db),
):
    return await LearningService(db).list_content(
        category=category,
        difficulty=difficulty,
        content_type=content_type,
        featured_only=featured_only,
        search=search,
        limit=limit,
    )


@router.get("/content/popular", response_model=list[ContentSchema])
async def popular_content(
    limit: int = Query(default=10, le=50),
    _: str = Depends(get_current_username),
    db: AsyncSession = Depends(get_db),
):
    return await LearningService(db).get_popular(limit)


@router.get("/content/{content_id}", response_model=ContentSchema)
async def get_content(
    content_id: int,
    _: str = Depends(get_current_username),
    db: AsyncSession = Depends(get_db),
):
    return await LearningService(db).get_content(content_id, count_view=True)


@router.post("/content", response_model=ContentSchema, status_code=status.HTTP_201_CREATED,
             dependencies=[Depends(require_admin)])
async def create_content(payload: ContentCreate, db: AsyncSession = Depends(get_db)):
    fields = payload.model_dump(exclude={"title"}, exclude_none=True)
    return await LearningService(db).create_content(payload.title, **fields)


@router.patch("/content/{content_id}", response_model=ContentSchema, dependencies=[Depends(require_admin)])
async def update_content(content_id: int, payload: ContentUpdate, db: AsyncSession = Depends(get_db)):
    return await LearningService(db).update_content(content_id, **payload.model_dump(exclude_none=True))


@router.delete("/content/{content_id}", status_code=status.HTTP_204_NO_CONTENT,
               dependencies=[Depends(require_admin)])
async def delete_content(content_id: int, db: AsyncSession = Depends(get_db)) -> None:
    await LearningService(db).delete_content(content_id)


@router.get("/progress", response_model=list[ProgressSchema])
async def list_progress(
    progress_status: Optional[ProgressStatus] = Query(default=None, alias="status"),
    username: str = Depends(get_current_username),
    db: AsyncSession = Depends(get_db),
):
    return await LearningService(db).list_progress(username, progress_status)


@router.get("/progress/stats")
async def progress_stats(
    username: str = Depends(get_current_username),
    db: AsyncSession = Depends(get_db),
) -> dict:
    return await LearningService(db).get_stats(username)


@router.post("/content/{content_id}/start", response_model=ProgressSchema)
async def start_content(
    content_id: int,
    username: str = Depends(get_current_username),
    db: AsyncSession = Depends(get_db),
):
    return await LearningService(db).start_content(username, content_id)


@router.put("/content/{content_id}/progress", response_model=ProgressSchema)
async def update_progress(
    content_id: int,
    payload: ProgressUpdate,
    username: str = Depends(get_current_username),
    db: AsyncSession = Depends(get_db),
):
    return await LearningService(db).update_progress(username, content_id, payload.completion_percentage)


@router.post("/content/{content_id}/complete", response_model=ProgressSchema)
async def complete_content(
    content_id: int,
    username: str = Depends(get_current_username),
    db: AsyncSession = Depends(get_db),
):
    return await LearningService(db).complete_content(username, content_id)


@router.post("/content/{content_id}/rate", response_model=ProgressSchema)
async def rate_content(
    content_id: int,
    payload: RatingRequest,
    username: str = Depends(get_current_username),
    db: AsyncSession = Depends(get_db),
):
    return await LearningService(db).rate_content(username, content_id, payload.rating)
