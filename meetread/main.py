import time
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import select

from meetread.core.config import settings
from meetread.core.logging import setup_logging, get_logger, request_id_ctx
from meetread.db.session import AsyncSessionLocal, engine
from meetread.db.models import Base, User, UserRole
from meetread.core.security import hash_password

logger = get_logger("meetread.main")


async def seed_admin() -> None:
    """Create the built-in admin account if it doesn't exist."""
    async with AsyncSessionLocal() as db:
        result = await db.execute(select(User).where(User.email == settings.ADMIN_EMAIL.lower()))
        admin = result.scalar_one_or_none()
        if not admin:
            admin = User(
                name=settings.ADMIN_NAME,
                email=settings.ADMIN_EMAIL.lower(),
                password_hash=hash_password(settings.ADMIN_PASSWORD),
                role=UserRole.ADMIN,
                is_built_in=True,
            )
            db.add(admin)
            await db.commit()
            logger.info(f"Built-in admin created: {settings.ADMIN_EMAIL}")
        else:
            logger.info(f"Built-in admin already exists: {settings.ADMIN_EMAIL}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown."""
    setup_logging(json_output=not settings.DEBUG)
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")

    # Create tables (in dev; in prod use migrations)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    await seed_admin()

    yield

    await engine.dispose()
    logger.info("Application shutdown complete")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description=(
        "## MeetRead API\n\n"
        "Book lending between readers:\n\n"
        "- **Authentication** – Register, login (session cookie or Bearer token), logout\n"
        "- **Books** – Browse the catalog; admins manage catalog books\n"
        "- **Collections** – Users register the books they own\n"
        "- **Borrowing** – Request a book, contact the owner over WhatsApp, "
        "and let the owner approve, reject, extend or mark it returned\n"
        "- **Notifications** – Owner decisions on your requests\n"
        "- **Users** – Admin account management\n\n"
        "### Borrow request flow\n"
        "`PENDING` → `APPROVED` → `RETURNED`, or `PENDING` → `REJECTED` / `CANCELLED`. "
        "Approving a request cancels every other pending request on the same book.\n"
    ),
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_tags=[
        {"name": "Health", "description": "Application health checks"},
        {"name": "Authentication", "description": "Register, login, logout and session lookup"},
        {"name": "Profile", "description": "Self-service profile and password"},
        {"name": "Books", "description": "Book browsing and catalog management"},
        {"name": "Collections", "description": "Books owned by the signed-in user"},
        {"name": "Borrowing", "description": "Borrow request lifecycle"},
        {"name": "Notifications", "description": "Events on the signed-in user's requests"},
        {"name": "Users", "description": "User management (Admin only)"},
    ],
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_middleware(request: Request, call_next):
    req_id = str(uuid.uuid4())[:8]
    request_id_ctx.set(req_id)

    start_time = time.time()
    response = await call_next(request)
    duration = time.time() - start_time

    logger.info(
        f"{request.method} {request.url.path} -> {response.status_code} "
        f"({duration:.3f}s)"
    )

    response.headers["X-Request-ID"] = req_id
    return response


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed payloads are a 400 with the first problem as the message."""
    errors = exc.errors()
    detail = "Invalid data"
    if errors:
        detail = str(errors[0].get("msg", detail)).removeprefix("Value error, ")
    logger.info(f"Validation failed: {request.method} {request.url.path}: {detail}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": detail, "errors": jsonable_encoder(errors)},
    )


@app.get("/health", tags=["Health"], summary="Health check", description="Returns the current health status and API version.")
async def health_check():
    return {"status": "healthy", "version": settings.APP_VERSION}


# Include routers
from meetread.api.v1.endpoints.auth import router as auth_router
from meetread.api.v1.endpoints.profile import router as profile_router
from meetread.api.v1.endpoints.books import router as books_router
from meetread.api.v1.endpoints.collections import router as collections_router
from meetread.api.v1.endpoints.borrow import router as borrow_router
from meetread.api.v1.endpoints.notifications import router as notifications_router
from meetread.api.v1.endpoints.users import router as users_router

app.include_router(auth_router, prefix="/api/v1")
app.include_router(profile_router, prefix="/api/v1")
app.include_router(books_router, prefix="/api/v1")
app.include_router(collections_router, prefix="/api/v1")
app.include_router(borrow_router, prefix="/api/v1")
app.include_router(notifications_router, prefix="/api/v1")
app.include_router(users_router, prefix="/api/v1")
