from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
import logging

from .exceptions import ScheduleException

logger = logging.getLogger(__name__)

async def schedule_exception_handler(request: Request, exc: ScheduleException):
    """Handle typed schedule failures"""
    if exc.status_code >= 500:
        logger.error(f"Schedule error: {exc.message} - Path: {request.url.path}")
    else:
        logger.info(f"Schedule request rejected: {exc.message} - Path: {request.url.path}")
    content = {"error": exc.message, "type": exc.__class__.__name__}
    field = getattr(exc, "field", None)
    if field:
        content["field"] = field
    return JSONResponse(status_code=exc.status_code, content=content)

async def general_exception_handler(request: Request, exc: Exception):
    """Handle general exceptions"""
    logger.error(f"Unexpected error: {str(exc)} - Path: {request.url.path}")
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error", "type": "InternalError"}
    )

def register_exception_handlers(app: FastAPI):
    app.add_exception_handler(ScheduleException, schedule_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)
