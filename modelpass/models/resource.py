"""Resource model: the metered model/service and the account that owns it."""

from sqlalchemy import Column, DateTime, String, func

from modelpass.core.database import Base
from modelpass.models.shared import generate_id


class Resource(Base):
    __tablename__ = "resources"

    id = Column(String(255), primary_key=True, default=generate_id)
    owner_id = Column(String(255), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
