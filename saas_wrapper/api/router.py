from fastapi import APIRouter

from saas_wrapper.api.applications.router import router as applications_router
from saas_wrapper.api.credit_config.router import router as credit_config_router
from saas_wrapper.api.credits.router import packages_router as credit_packages_router
from saas_wrapper.api.credits.router import router as credits_router
from saas_wrapper.api.health.router import router as health_router
from saas_wrapper.api.payments.router import router as payments_router

# V1 API router
v1_router = APIRouter(prefix="/v1")

# Include domain routers
v1_router.include_router(credit_packages_router)
v1_router.include_router(credits_router)
v1_router.include_router(credit_config_router)
v1_router.include_router(applications_router)
v1_router.include_router(payments_router)

# Main API router
api_router = APIRouter()
api_router.include_router(health_router)
api_router.include_router(v1_router)
