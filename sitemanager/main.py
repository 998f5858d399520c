"""
Main FastAPI application
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import select

from sitemanager.config import get_settings
from sitemanager.database import create_tables, engine, session_scope
from sitemanager.models import User
from sitemanager.api.auth import get_password_hash
from sitemanager.api import auth, sites, boq, materials, checklists, jmr, billing_readiness
from sitemanager.api import suppliers, master_materials, grn, supplier_invoices
from sitemanager.api import expenses, expense_dashboard, workstations, files
from sitemanager.utils.logger import get_logger

settings = get_settings()
logger = get_logger(__name__)


async def seed_admin() -> None:
    """First start on an empty database gets one admin to log in with"""
    async with session_scope() as session:
        result = await session.execute(select(User).where(User.email == settings.DEFAULT_ADMIN_EMAIL))
        if result.scalar_one_or_none():
            return
        session.add(User(
            email=settings.DEFAULT_ADMIN_EMAIL,
            full_name="Site Administrator",
            hashed_password=get_password_hash(settings.DEFAULT_ADMIN_PASSWORD),
            is_admin=True,
        ))
    logger.info(f"Created default admin user {settings.DEFAULT_ADMIN_EMAIL}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    await create_tables()
    logger.info(f"{settings.APP_NAME} {settings.APP_VERSION} started, database ready")
    await seed_admin()

    yield

    await engine.dispose()

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    debug=settings.DEBUG,
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(auth.router, prefix="/api/auth", tags=["Authentication"])
app.include_router(sites.router, prefix="/api/sites", tags=["Sites"])
app.include_router(boq.router, prefix="/api/boq", tags=["BOQ"])
app.include_router(materials.router, prefix="/api/materials", tags=["Materials"])
app.include_router(checklists.router, prefix="/api/checklists", tags=["Checklists"])
app.include_router(jmr.router, prefix="/api/jmr", tags=["JMR"])
app.include_router(billing_readiness.router, prefix="/api/billing-readiness", tags=["Billing Readiness"])
app.include_router(suppliers.router, prefix="/api/suppliers", tags=["Suppliers"])
app.include_router(master_materials.router, prefix="/api/master-materials", tags=["Master Materials"])
app.include_router(grn.router, prefix="/api/grn", tags=["GRN"])
app.include_router(supplier_invoices.router, prefix="/api/supplier-invoices", tags=["Supplier Invoices"])
app.include_router(expenses.router, prefix="/api/expenses", tags=["Expenses"])
app.include_router(expense_dashboard.router, prefix="/api/expense-dashboard", tags=["Expense Dashboard"])
app.include_router(workstations.router, prefix="/api/workstations", tags=["Workstations"])
app.include_router(files.router, prefix="/api/files", tags=["Files"])


@app.get("/")
async def root():
    return {
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "running"
    }


@app.get("/health")
async def health_check():
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "sitemanager.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG
    )
