from fastapi import Depends, Request

from apps.api.app.config import settings
from jobs.analyze.classifier import SentimentClassifier
from jobs.analyze.model_client import ModelClient
from jobs.clock import Clock, SystemClock
from jobs.pipeline import UploadPipeline


def get_model_client(request: Request) -> ModelClient:
    # Built once in the app lifespan, see main.py
    return request.app.state.model_client


def get_clock() -> Clock:
    return SystemClock()


def get_classifier(
    client: ModelClient = Depends(get_model_client),
    clock: Clock = Depends(get_clock),
) -> SentimentClassifier:
    return SentimentClassifier(
        client,
        clock=clock,
        brand=settings.brand_name,
        backoff_seconds=settings.rate_limit_backoff_seconds,
        max_retries=settings.rate_limit_max_retries,
    )


def get_pipeline(
    classifier: SentimentClassifier = Depends(get_classifier),
    clock: Clock = Depends(get_clock),
) -> UploadPipeline:
    return UploadPipeline(
        classifier,
        batch_size=settings.batch_size,
        delay_seconds=settings.batch_delay_seconds,
        clock=clock,
        field_size_limit=settings.csv_field_size_limit,
    )
