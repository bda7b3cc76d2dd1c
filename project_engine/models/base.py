"""SQLAlchemy base declaration for all models."""
from sqlalchemy.orm import declarative_base

# Single Base for projects and tasks
Base = declarative_base()
