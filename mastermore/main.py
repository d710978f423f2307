import logging
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from mastermore.routes import admin, auth, courses, modules, projects
from mastermore.db.base import Base
from mastermore.db.sessions import engine
from mastermore.core.config import settings
from mastermore.core.exceptions import AccessDenied, ProgressionError

# Import all models to ensure they're registered with Base
import mastermore.models

logger = logging.getLogger(__name__)

# Create tables
Base.metadata.create_all(bind=engine)

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Sequential course progression, completion tracking and grading"
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routers
app.include_router(auth.router)
app.include_router(courses.router)
app.include_router(modules.router)
app.include_router(projects.router)
app.include_router(admin.router)


@app.exception_handler(ProgressionError)
async def progression_error_handler(request: Request, exc: ProgressionError):
    body = {"detail": exc.detail}
    if isinstance(exc, AccessDenied):
        body["locked"] = True
        logger.warning("Access denied on %s %s: %s", request.method, request.url.path, exc.detail)
    return JSONResponse(status_code=exc.status_code, content=body)


@app.on_event("startup")
async def startup_event():
    logger.info("%s v%s starting", settings.APP_NAME, settings.APP_VERSION)
    logger.info("Admin allow-list entries: %d", len(settings.ADMIN_EMAILS))


@app.get("/health")
def health():
    return {"status": "ok"}
