from __future__ import annotations

from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, Float, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.feedback.models import Base


class Course(Base):
    __tablename__ = "courses"
    __table_args__ = (
        Index("idx_courses_professor_id", "professor_id"),
        Index("idx_courses_average_rating", "average_rating"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)

    # Not a foreign key: a deleted professor leaves a dangling id behind.
    professor_id: Mapped[int] = mapped_column(Integer, nullable=False)

    # Derived; always recomputed from reviews, never patched.
    average_rating: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    # Optimistic concurrency for read-modify-write on the review collection.
    version_id: Mapped[int] = mapped_column(Integer, nullable=False)

    reviews: Mapped[list["Review"]] = relationship(
        "Review",
        back_populates="course",
        cascade="all, delete-orphan",
        order_by="Review.id",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version_id}


class Review(Base):
    __tablename__ = "reviews"
    __table_args__ = (
        UniqueConstraint("course_id", "student_id", name="uq_reviews_course_student"),
        CheckConstraint("rating >= 1 AND rating <= 5", name="ck_reviews_rating_range"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    course_id: Mapped[int] = mapped_column(ForeignKey("courses.id", ondelete="CASCADE"), nullable=False)

    # Plain id, same dangling-reference rule as Course.professor_id.
    student_id: Mapped[int] = mapped_column(Integer, nullable=False)

    rating: Mapped[int] = mapped_column(Integer, nullable=False)
    comment: Mapped[str] = mapped_column(Text, nullable=False)

    # Set once by the owning professor; immutable afterwards.
    reply: Mapped[str | None] = mapped_column(Text, nullable=True)
    replied_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    course: Mapped[Course] = relationship("Course", back_populates="reviews")
