from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from database import get_db
from site_settings import (
    BACKGROUND_PAGE_TYPES,
    FAVICON_KEY,
    advanced_start_info,
    all_deadlines,
    background_key,
    get_setting,
    site_title,
)
from utils import try_download_url

router = APIRouter()


def resolve_image_url(value):
    if not value:
        return None
    if value.startswith("http://") or value.startswith("https://"):
        return value
    return try_download_url(value)


@router.get("/")
def root():
    return {"message": "Dance Entry API is running"}


@router.get("/health")
def health_check():
    return {"status": "healthy"}


@router.get("/public/site-title")
def get_site_title(db: Session = Depends(get_db)):
    return {"site_title": site_title(db)}


@router.get("/public/background/{page_type}")
def get_background_image(page_type: str, db: Session = Depends(get_db)):
    if page_type not in BACKGROUND_PAGE_TYPES:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid page type")
    return {"page_type": page_type, "image_url": resolve_image_url(get_setting(db, background_key(page_type)))}


@router.get("/public/favicon")
def get_favicon(db: Session = Depends(get_db)):
    return {"favicon_url": resolve_image_url(get_setting(db, FAVICON_KEY))}


@router.get("/public/deadlines")
def get_deadlines(db: Session = Depends(get_db)):
    return {"deadlines": all_deadlines(db), "advanced": advanced_start_info(db)}
