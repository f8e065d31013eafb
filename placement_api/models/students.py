"""Student model (candidate identity, owned by the accounts service)."""

from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy import func
from sqlalchemy.orm import relationship

from placement_api.config.database import Base


class Student(Base):
    """
    Candidate identity.

    Records are created by the accounts service; the pipeline only reads them
    to resolve the external student identifier found in result files.
    """

    __tablename__ = "students"

    id = Column(Integer, primary_key=True, autoincrement=True)
    student_id = Column(String(64), nullable=True, unique=True)  # University roll number

    full_name = Column(String(255), nullable=False)
    university_email = Column(String(255), nullable=False, unique=True)
    branch = Column(String(100), nullable=True)

    created_at = Column(DateTime, default=func.now())

    # Relationships
    applications = relationship("Application", back_populates="student")

    def __repr__(self) -> str:
        return f"<Student(id={self.id}, student_id={self.student_id})>"
