from fastapi import APIRouter

from app import config

router = APIRouter(tags=["health"])


@router.get("/health")
def health():
    return {"ok": True, "env": config.settings.ENV}
