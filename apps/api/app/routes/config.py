from fastapi import APIRouter

from jobs.analyze.classifier import load_rubric
from jobs.schemas import ENTITIES, SENTIMENTS

router = APIRouter()

@router.get("/api/config/rubric")
def get_rubric():
    return {
        "sentiments": list(SENTIMENTS),
        "entities": list(ENTITIES),
        "rubric": load_rubric(),
    }
