"""SQLAlchemy database models."""
from dotenv import load_dotenv
from app.models.base import Base
from app.models.audit import AuditLead, AuditRecord


load_dotenv()

__all__ = [
    "Base",
    "AuditLead",
    "AuditRecord",
]
