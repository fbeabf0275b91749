"""
Main entrypoint for the FastAPI server
"""

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.routing import APIRoute
from core.lifespan import lifespan
from core.config import get_settings
from core.logger import logger

from api.files.exceptions import FileServiceError
from api.files.routes import router as files_router


# Customize route id's
# Helpful for creating sensible names in the client
def custom_generate_unique_id(route: APIRoute):
    """ Generate unique route IDs based on route name """
    return f"{route.name}"  # these must be unique


# Create schema & router
app = FastAPI(
    lifespan=lifespan,
    generate_unique_id_function=custom_generate_unique_id
)

# CORS settings to allow client-server communication
# Set with env variable
origins = [origin for origin in [get_settings().client_origin] if origin]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(FileServiceError)
async def handle_file_service_error(request: Request, exc: FileServiceError) -> JSONResponse:
    """Render file service errors with their kind and the ids involved"""
    if exc.status_code >= 500:
        logger.error("%s %s failed: %r", request.method, request.url.path, exc)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# REST routers
# Add each api/feature folder here
API_PREFIX = "/api/v1"

app.include_router(files_router, prefix=API_PREFIX)


# Health check endpoint for monitoring
@app.get("/api/health", tags=["health"])
def health_check():
    return {"status": "ok", "message": "File attachment API is running"}


if __name__ == "__main__":
    # For debugging purposes
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
