# (c) Copyright Datacraft, 2026
import logging

from fastapi import FastAPI

from authz_server.routers import permissions_router
from authz_server.services import PermissionService

logger = logging.getLogger(__name__)


def create_app(service: PermissionService) -> FastAPI:
	"""Build the API application around an explicitly constructed service."""
	app = FastAPI(title="Authorization Server")
	app.state.permission_service = service
	app.include_router(permissions_router)

	logger.info(f"Serving {len(service.store)} policies")
	return app
