"""
Pytest configuration file for backend testing.
"""
import os
import sys
from pathlib import Path

# Tests never touch a real database server
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ENVIRONMENT", "test")

# Add the backend directory to Python path so imports work correctly
backend_dir = Path(__file__).parent
if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))

# Import all models to register them with SQLAlchemy
from modules.preps.models import (  # noqa: E402,F401
    ingredient_models,
    prep_models,
    menu_item_models,
)
