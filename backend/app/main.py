import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.v1.router import api_router
from app.core.config import settings
from app.core.errors import ExamError


logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format='%(asctime)s %(levelname)s %(name)s: %(message)s',
)
logger = logging.getLogger(__name__)


app = FastAPI(
    title='Exam Attempt Service API',
    version='0.1.0',
    openapi_url='/api/v1/openapi.json',
    docs_url='/api/v1/docs',
    redoc_url='/api/v1/redoc',
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)

app.include_router(api_router, prefix='/api/v1')


@app.exception_handler(ExamError)
async def exam_error_handler(request: Request, exc: ExamError) -> JSONResponse:
    if exc.http_status >= 500:
        logger.error('%s %s failed: %s', request.method, request.url.path, exc.message)
    else:
        logger.info('%s %s rejected with %s: %s', request.method, request.url.path, exc.code, exc.message)
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())


@app.get('/')
def root() -> dict[str, str]:
    return {'service': 'exam-attempt-api', 'status': 'running'}
