from fastapi import APIRouter

from orgflow.api.v1 import departments, job_descriptions, organizations, processes, roles

api_router = APIRouter()

api_router.include_router(organizations.router)
api_router.include_router(departments.router)
api_router.include_router(roles.router)
api_router.include_router(processes.router)
api_router.include_router(job_descriptions.router)
