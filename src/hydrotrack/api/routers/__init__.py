"""Hydrotrack API routers.

Each router handles one area of the package lifecycle:
- packages: package CRUD and deletion
- assignments: drawing and component assignment, availability preview
- certificates: draft and final certificate submission
- workflow: acceptance stage transitions, progress and edit history
"""

from hydrotrack.api.routers.assignments import router as assignments_router
from hydrotrack.api.routers.certificates import router as certificates_router
from hydrotrack.api.routers.packages import router as packages_router
from hydrotrack.api.routers.workflow import router as workflow_router

__all__ = [
    "assignments_router",
    "certificates_router",
    "packages_router",
    "workflow_router",
]
