from sqlalchemy import Column, String, Text

from .db import Base


class Slot(Base):
    __tablename__ = "slots"

    label = Column(String, primary_key=True)
    value = Column(Text, nullable=False)  # whole serialized collection or key export
    updated_at = Column(String, nullable=False)
