import logging

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from clinic_backend.core import config
from clinic_backend.core.exceptions import DomainError
from clinic_backend.dependencies import Services, build_services
from clinic_backend.routes import booking_routes, consultation_routes

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    logging.basicConfig(
        level=config.LOG_LEVEL.upper(),
        format='%(asctime)s %(levelname)s %(name)s %(message)s',
    )


def handle_domain_error(request: Request, exc: DomainError) -> JSONResponse:
    logger.warning(
        'Request rejected',
        extra={'code': exc.code, 'path': request.url.path, 'method': request.method},
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


def handle_database_error(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.error(
        'Database failure',
        exc_info=exc,
        extra={'path': request.url.path, 'method': request.method},
    )
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            'error': {
                'message': 'Database unavailable. Verify DATABASE_URL and database credentials.',
                'code': 'SERVICE_UNAVAILABLE',
            }
        },
    )


def prepare_database(services: Services) -> None:
    """Create missing tables and drop idempotency records that have expired."""
    try:
        services.gateway.create_schema()
        services.idempotency.purge_expired()
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL and database credentials.')


def create_app(services: Services | None = None) -> FastAPI:
    configure_logging()
    config.validate_runtime_config()

    app = FastAPI()
    app.state.services = services or build_services()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=['*'],
        allow_headers=['*'],
        expose_headers=['Idempotency-Key'],
    )

    app.add_exception_handler(DomainError, handle_domain_error)
    app.add_exception_handler(SQLAlchemyError, handle_database_error)

    @app.on_event('startup')
    def initialize_database() -> None:
        prepare_database(app.state.services)

    @app.get('/')
    def root():
        return {'status': 'Consultation Booking API Running'}

    app.include_router(booking_routes.router)
    app.include_router(consultation_routes.router)
    return app
