import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from core.config import settings
from core.exceptions import register_exception_handlers

# ========== Prep Costing ==========
from modules.preps.routes import prep_router, ingredient_router, menu_item_router

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

app = FastAPI(
    title="Prep Costing API",
    description="Ingredient, prep and menu item cost management",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.debug else [],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

app.include_router(prep_router)
app.include_router(ingredient_router)
app.include_router(menu_item_router)


@app.get("/health")
async def health():
    return {"status": "ok", "environment": settings.environment}
