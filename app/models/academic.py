# app/models/academic.py
from sqlalchemy import Column, String, Boolean, ForeignKey, Uuid, UniqueConstraint
from sqlalchemy.orm import relationship
from .base import Base


class College(Base):
    __tablename__ = "colleges"

    name = Column(String(200), nullable=False)
    code = Column(String(20), unique=True)
    is_active = Column(Boolean, default=True)


class Batch(Base):
    __tablename__ = "batches"

    # A batch can exist before it is linked to a college
    college_id = Column(Uuid, ForeignKey("colleges.id"), nullable=True, index=True)
    name = Column(String(100), nullable=False)
    program = Column(String(100))
    year = Column(String(10))

    college = relationship("College")
    sections = relationship("Section", back_populates="batch")


class Section(Base):
    __tablename__ = "sections"

    batch_id = Column(Uuid, ForeignKey("batches.id"), nullable=False, index=True)
    name = Column(String(50), nullable=False)

    __table_args__ = (
        UniqueConstraint('batch_id', 'name', name='uq_section_per_batch'),
    )

    batch = relationship("Batch", back_populates="sections")


class Subject(Base):
    __tablename__ = "subjects"

    batch_id = Column(Uuid, ForeignKey("batches.id"), nullable=False, index=True)
    section_id = Column(Uuid, ForeignKey("sections.id"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    code = Column(String(20))
    is_active = Column(Boolean, default=True)

    __table_args__ = (
        UniqueConstraint('batch_id', 'section_id', 'name', name='uq_subject_name_per_section'),
    )
