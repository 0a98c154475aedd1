"""
Profile Route - User profile, projects and known people

Profiles drive capture personalization: gravity keywords for the LLM,
vocabulary hints for transcription, and the timezone for due dates.
"""

from fastapi import APIRouter, status

from flux.dashboard.backend.models import (
    CreateProfileRequest,
    PersonRequest,
    ProjectRequest,
    UpdateProfileRequest,
)
from flux.profile.manager import (
    add_person,
    add_project,
    create_profile,
    delete_person,
    delete_project,
    get_profile,
    update_profile,
)

router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_user_profile(body: CreateProfileRequest):
    return create_profile(**body.model_dump())


@router.get("/{user_id}")
async def get_user_profile(user_id: str):
    """Profile with decoded keyword lists, projects and known people."""
    return get_profile(user_id)


@router.put("/{user_id}")
async def update_user_profile(user_id: str, body: UpdateProfileRequest):
    profile = update_profile(user_id, **body.model_dump(exclude_unset=True))
    return {"message": "Profile updated", "profile": profile}


@router.post("/{user_id}/projects", status_code=status.HTTP_201_CREATED)
async def create_project(user_id: str, body: ProjectRequest):
    return {"project": add_project(user_id, body.name, body.description, body.color)}


@router.delete("/{user_id}/projects/{project_id}")
async def remove_project(user_id: str, project_id: str):
    delete_project(user_id, project_id)
    return {"message": "Project deleted", "id": project_id}


@router.post("/{user_id}/people", status_code=status.HTTP_201_CREATED)
async def create_person(user_id: str, body: PersonRequest):
    return {"person": add_person(user_id, body.name, body.context)}


@router.delete("/{user_id}/people/{person_id}")
async def remove_person(user_id: str, person_id: str):
    delete_person(user_id, person_id)
    return {"message": "Person deleted", "id": person_id}
