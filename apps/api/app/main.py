import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from apps.api.app.config import settings
from apps.api.app.db import engine
from apps.api.app.models import Base
from apps.api.app.routes.ops import router as ops_router
from apps.api.app.routes.config import router as config_router
from apps.api.app.routes.upload import router as upload_router
from apps.api.app.routes.reviews import router as reviews_router
from apps.api.app.routes.metrics import router as metrics_router
from apps.api.app.routes.metrics_topics import router as metrics_topics_router
from apps.api.app.routes.metrics_trend import router as metrics_trend_router
from jobs.analyze.model_client import build_model_client

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


@asynccontextmanager
async def lifespan(app: FastAPI):
    logging.basicConfig(level=settings.log_level.upper(), format=LOG_FORMAT)
    Base.metadata.create_all(bind=engine)
    app.state.model_client = build_model_client(settings)
    try:
        yield
    finally:
        app.state.model_client.close()


app = FastAPI(title="Kana Insights API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.get("/")
def root():
    return {"name": "Kana Insights API", "status": "ok", "docs": "/docs"}

app.include_router(ops_router)
app.include_router(config_router)
app.include_router(upload_router)
app.include_router(reviews_router)
app.include_router(metrics_router)
app.include_router(metrics_topics_router)
app.include_router(metrics_trend_router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("apps.api.app.main:app", host=settings.api_host, port=settings.api_port)
