from sqlalchemy import Column, String, DateTime, ForeignKey, Text
from sqlalchemy.orm import relationship
from academy.core.database import Base
from datetime import datetime


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(String, primary_key=True, index=True)
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)  # acting admin
    action = Column(String, nullable=False, index=True)  # 'update_subscription_status', ...
    resource_type = Column(String, nullable=False)  # 'subscription', 'forum_category', ...
    resource_id = Column(String, nullable=True)
    details = Column(Text)  # JSON string
    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    # Relationships
    user = relationship("User")
