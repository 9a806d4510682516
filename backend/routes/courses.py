import logging
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Request

from dependencies import get_access_policy, get_documents, get_user_email
from models.schemas import AccessResponse, CourseRequest, Source
from services import courses_service
from services.auth_service import AccessPolicy

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/access", response_model=AccessResponse)
async def get_access(
    email: Optional[str] = Depends(get_user_email),
    policy: AccessPolicy = Depends(get_access_policy),
):
    return AccessResponse(
        email=email,
        is_admin=policy.is_admin(email),
        is_supervisor=policy.is_supervisor(email),
        has_admin_panel=policy.has_admin_panel_access(email),
    )


@router.get("/courses", response_model=list[Source])
async def list_courses(request: Request):
    """Built-in courses plus everything shared through the admin panel."""
    return await courses_service.load_courses(get_documents(request))


@router.post("/courses", response_model=Source)
async def add_course(
    request: Request,
    payload: CourseRequest,
    email: Optional[str] = Depends(get_user_email),
    policy: AccessPolicy = Depends(get_access_policy),
):
    if not policy.has_admin_panel_access(email):
        raise HTTPException(status_code=403, detail="Admin panel access required.")
    if not payload.content.strip():
        raise HTTPException(status_code=400, detail="Course content is empty.")
    try:
        return await courses_service.save_course(get_documents(request), payload.name, payload.content, payload.category)
    except Exception as e:
        logger.error("Error saving course: %s", e)
        raise HTTPException(status_code=500, detail="Failed to save course.")


@router.delete("/courses/{course_id}")
async def delete_course(
    request: Request,
    course_id: str,
    email: Optional[str] = Depends(get_user_email),
    policy: AccessPolicy = Depends(get_access_policy),
):
    if not policy.is_admin(email):
        raise HTTPException(status_code=403, detail="Only admins can delete courses.")
    if any(c.id == course_id for c in courses_service.INITIAL_COURSES):
        raise HTTPException(status_code=400, detail="Built-in courses cannot be deleted.")
    try:
        await courses_service.delete_course(get_documents(request), course_id)
    except Exception as e:
        logger.error("Error deleting course %s: %s", course_id, e)
        raise HTTPException(status_code=500, detail="Failed to delete course.")
    return {"deleted": True}
