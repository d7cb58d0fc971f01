from fastapi import APIRouter

from feedstream.feeds.presentation.feed_router import router as feed_router

router = APIRouter()

router.include_router(feed_router, prefix="/feeds", tags=["feeds"])
