"""Route handlers for the Web API."""

from exam_engine.web.routes.health import router as health_router
from exam_engine.web.routes.attempts import router as attempts_router
from exam_engine.web.routes.students import router as students_router
from exam_engine.web.routes.series import router as series_router
from exam_engine.web.routes.integrity import router as integrity_router
from exam_engine.web.routes.questions import router as questions_router

__all__ = [
    "health_router",
    "attempts_router",
    "students_router",
    "series_router",
    "integrity_router",
    "questions_router",
]
