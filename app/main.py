from contextlib import asynccontextmanager
import logging
import time

from fastapi import FastAPI, Request

from app.config import settings
from app.db import Base, SessionLocal, engine
from app.routers import orders, products, teacher_sessions
from app.route_logging import EndpointNameRoute
from app.services.catalog_service import seed_default_products
from app.services.payment_service import shutdown_payment_executor

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s %(levelname)s %(name)s %(message)s',
)


@asynccontextmanager
async def lifespan(_: FastAPI):
    Base.metadata.create_all(bind=engine)
    if settings.seed_demo_catalog:
        db = SessionLocal()
        try:
            seed_default_products(db)
        finally:
            db.close()
    yield
    shutdown_payment_executor()


app = FastAPI(title=settings.app_name, version='0.1.0', lifespan=lifespan)
app.router.route_class = EndpointNameRoute


@app.middleware('http')
async def slow_request_logger(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    duration_ms = (time.perf_counter() - started) * 1000.0
    if duration_ms >= settings.metrics_slow_ms:
        logging.getLogger('app.request').info(
            'request_slow path=%s method=%s status_code=%s duration_ms=%.2f',
            request.url.path,
            request.method,
            response.status_code,
            duration_ms,
        )
    return response

app.include_router(teacher_sessions.router)
app.include_router(orders.router)
app.include_router(products.router)


@app.get('/')
def health():
    return {'app': settings.app_name, 'status': 'ok'}


@app.get('/health')
def healthcheck():
    return {'status': 'ok'}
