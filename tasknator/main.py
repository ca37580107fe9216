from __future__ import annotations

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from tasknator.api.routes import assets, audits, exports, jobs, plans
from tasknator.config import get_settings
from tasknator.core.errors import ExportError
from tasknator.core.exceptions import export_exception_handler, global_exception_handler, http_exception_handler, request_validation_exception_handler
from tasknator.core.lifespan import lifespan
from tasknator.core.middleware import RequestLoggingMiddleware, SecurityHeadersMiddleware

settings = get_settings()

app = FastAPI(title="Tasknator", lifespan=lifespan, docs_url=None, redoc_url=None, openapi_url=None)

app.add_middleware(CORSMiddleware, allow_origins=settings.allowed_origins, allow_credentials=True, allow_methods=["GET", "POST", "OPTIONS"], allow_headers=["content-type", "authorization"], expose_headers=["content-length", "content-disposition"])

# Add exception handlers
app.add_exception_handler(Exception, global_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(ExportError, export_exception_handler)
app.add_exception_handler(RequestValidationError, request_validation_exception_handler)

# Add middleware
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(SecurityHeadersMiddleware)


@app.get("/health", include_in_schema=False)
async def health_check() -> dict[str, str]:
  """Return a simple health status."""
  return {"status": "ok", "version": "0.1.0"}


app.include_router(audits.router, prefix="/api/audit", tags=["audits"])
app.include_router(plans.router, prefix="/api/plan", tags=["plans"])
app.include_router(assets.router, prefix="/api/assets", tags=["assets"])
app.include_router(exports.router, prefix="/api/export", tags=["exports"])
app.include_router(jobs.router, prefix="/api/jobs", tags=["jobs"])
