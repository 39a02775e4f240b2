import logging

from fastapi import FastAPI

from fieldshare.config import settings
from fieldshare.core.errors import register_exception_handlers
from fieldshare.modules.auth import router as auth_router
from fieldshare.modules.fields import router as fields_router
from fieldshare.modules.permissions import router as permissions_router
from fieldshare.modules.providers import router as providers_router
from fieldshare.modules.tasks import router as tasks_router

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(title="FieldShare API", version=settings.PROJECT_VERSION)

register_exception_handlers(app)

# Register Modules
app.include_router(auth_router.router)
app.include_router(fields_router.router)
app.include_router(permissions_router.router)
app.include_router(providers_router.router)
app.include_router(tasks_router.router)


@app.get("/")
def root():
    return {"message": "System is Online. Use /docs for Swagger UI"}
