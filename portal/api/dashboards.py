"""Role dashboards, each composed of independently loaded sections."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status

from portal.api.dependencies import cached_service, get_assessments, require_user_type
from portal.api.sections import load_section, load_sections
from portal.models.session import Session
from portal.services.assessments import AssessmentService
from portal.services.resources import ClassService, FeatureFlagService, SubjectService
from portal.services.students import StudentService
from portal.services.study_plans import StudyPlanService

router = APIRouter(tags=["dashboards"])


async def _empty() -> list:
    return []


@router.get("/student/dashboard")
async def student_dashboard(
    session: Annotated[Session, Depends(require_user_type("student"))],
    students: Annotated[StudentService, Depends(cached_service(StudentService))],
    subjects: Annotated[SubjectService, Depends(cached_service(SubjectService))],
    assessments: Annotated[AssessmentService, Depends(get_assessments)],
    plans: Annotated[StudyPlanService, Depends(cached_service(StudyPlanService))],
) -> dict:
    user = session.user
    sections = await load_sections(
        {
            "overview": students.overview(user.id),
            "subjects": subjects.by_class(user.class_id) if user.class_id else _empty(),
            "pending_assessments": assessments.pending(user.id),
            "recent_activity": students.activity(user.id, limit=5),
            "study_plan": plans.active(user.id),
        }
    )
    return {"user": {"id": user.id, "name": user.name}, **sections}


@router.get("/parent/dashboard")
async def parent_dashboard(
    session: Annotated[Session, Depends(require_user_type("parent"))],
    students: Annotated[StudentService, Depends(cached_service(StudentService))],
) -> dict:
    children = await load_section("children", students.children())
    if children["data"]:
        ids = [str(child.get("_id") or child.get("id")) for child in children["data"]]
        overviews = await load_sections({cid: students.overview(cid) for cid in ids})
        children["data"] = [
            {**child, "overview": overviews[cid]}
            for child, cid in zip(children["data"], ids)
        ]
    return {"user": {"id": session.user.id, "name": session.user.name}, "children": children}


@router.get("/parent/children/{child_id}")
async def parent_child_detail(
    child_id: str,
    _session: Annotated[Session, Depends(require_user_type("parent"))],
    students: Annotated[StudentService, Depends(cached_service(StudentService))],
) -> dict:
    children = await students.children() or []
    if child_id not in {str(c.get("_id") or c.get("id")) for c in children}:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Child not found")
    return {
        "child_id": child_id,
        **await load_sections(
            {
                "overview": students.overview(child_id),
                "statistics": students.statistics(child_id),
                "assessment_results": students.assessment_results(child_id),
                "study_analytics": students.study_analytics(child_id),
            }
        ),
    }


@router.get("/admin/dashboard")
async def admin_dashboard(
    _session: Annotated[Session, Depends(require_user_type("admin"))],
    classes: Annotated[ClassService, Depends(cached_service(ClassService))],
    subjects: Annotated[SubjectService, Depends(cached_service(SubjectService))],
    students: Annotated[StudentService, Depends(cached_service(StudentService))],
    flags: Annotated[FeatureFlagService, Depends(cached_service(FeatureFlagService))],
) -> dict:
    sections = await load_sections(
        {
            "classes": classes.list(),
            "subjects": subjects.list(),
            "students": students.students(),
            "feature_flags": flags.list(),
        }
    )
    counts = {
        name: len(section["data"]) if isinstance(section["data"], list) else None
        for name, section in sections.items()
    }
    return {"counts": counts, **sections}
