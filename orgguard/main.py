import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from orgguard.core.database import get_prisma, uses_prisma
from orgguard.core.settings import settings
from orgguard.domains.admin.routes import router as admin_router
from orgguard.domains.auth.routes import router as me_router
from orgguard.domains.organizations.routes import router as organizations_router


def configure_logging() -> None:
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # Startup
    configure_logging()
    if uses_prisma():
        await get_prisma().connect()
    yield
    # Shutdown
    if uses_prisma():
        await get_prisma().disconnect()


app = FastAPI(
    title="OrgGuard API",
    description="Multi-tenant organization API with role-based access control",
    version="0.1.0",
    lifespan=lifespan,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.APP_BASE_URL],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(me_router, prefix="/api/v1")
app.include_router(organizations_router, prefix="/api/v1")
app.include_router(admin_router, prefix="/api/v1")


@app.get("/")
async def root() -> dict[str, str]:
    return {"message": "OrgGuard API is running"}


@app.get("/health")
async def health_check() -> dict[str, str]:
    return {"status": "healthy"}
