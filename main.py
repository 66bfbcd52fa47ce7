from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from nanocloud.config import settings
from nanocloud.errors import NanoCloudError, UploadAborted
from nanocloud.file_handlers import router
import logging
import os
import uvicorn

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

app = FastAPI(title=settings.APP_TITLE)

# CORS setup if needed
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

os.makedirs(settings.STORAGE_ROOT, exist_ok=True)
os.makedirs(settings.chunks_dir, exist_ok=True)

app.include_router(router, prefix="/api")


# Domain errors become {"success": false, "message": ...}
@app.exception_handler(NanoCloudError)
async def nanocloud_error_handler(request: Request, exc: NanoCloudError):
    if not isinstance(exc, UploadAborted):
        logger.info(f"{request.url.path} rejected: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"success": False, "message": exc.message})


# Malformed form or body fields, without echoing the input
@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    logger.info(f"{request.url.path} rejected: invalid request parameters")
    return JSONResponse(status_code=400, content={"success": False, "message": "Invalid request parameters."})


# Nothing about the failure leaks to the client
@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.url.path}")
    return JSONResponse(status_code=500, content={"success": False, "message": "Server error."})


@app.get("/health")
async def health_check():
    return {"status": "healthy"}


if __name__ == "__main__":
    uvicorn.run(app, host=settings.SERVER_HOST, port=settings.SERVER_PORT)
