"""
Dataroom Models — SQLAlchemy models for the tree store.

Tables:
1. datarooms          — Dataroom registry (team-scoped, optional template flag)
2. folders            — Regular team folders (source of create-from-folder)
3. documents          — Underlying documents (name, owning team folder)
4. dataroom_folders   — Folder rows of a dataroom tree (parent + materialized path)
5. dataroom_documents — Placements: document ↔ dataroom folder location
"""

from __future__ import annotations

from sqlalchemy import (
    Boolean,
    Column,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from dataroom.db.base import AuditMixin, Base, new_id


class Dataroom(Base, AuditMixin):
    __tablename__ = "datarooms"

    id = Column(String(32), primary_key=True, default=new_id)
    team_id = Column(String(64), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    is_template = Column(Boolean, default=False, nullable=False)
    enable_change_notifications = Column(Boolean, default=False, nullable=False)

    folders = relationship(
        "DataroomFolder", back_populates="dataroom", cascade="all, delete-orphan",
        passive_deletes=True,
    )
    documents = relationship(
        "DataroomDocument", back_populates="dataroom", cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"<Dataroom(id={self.id}, name='{self.name}')>"


class Folder(Base, AuditMixin):
    """A regular (non-dataroom) team folder."""

    __tablename__ = "folders"

    id = Column(String(32), primary_key=True, default=new_id)
    team_id = Column(String(64), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    path = Column(String(1024), nullable=False)
    parent_id = Column(String(32), ForeignKey("folders.id", ondelete="CASCADE"), nullable=True)

    __table_args__ = (
        UniqueConstraint("team_id", "path", name="uq_folders_team_path"),
    )

    def __repr__(self) -> str:
        return f"<Folder(id={self.id}, path='{self.path}')>"


class Document(Base, AuditMixin):
    """Underlying document. Content and versions live outside this store."""

    __tablename__ = "documents"

    id = Column(String(32), primary_key=True, default=new_id)
    team_id = Column(String(64), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    folder_id = Column(String(32), ForeignKey("folders.id", ondelete="SET NULL"), nullable=True, index=True)

    def __repr__(self) -> str:
        return f"<Document(id={self.id}, name='{self.name}')>"


class DataroomFolder(Base, AuditMixin):
    __tablename__ = "dataroom_folders"

    id = Column(String(32), primary_key=True, default=new_id)
    dataroom_id = Column(String(32), ForeignKey("datarooms.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(255), nullable=False)
    path = Column(String(1024), nullable=False)
    parent_id = Column(String(32), ForeignKey("dataroom_folders.id", ondelete="CASCADE"), nullable=True)
    order_index = Column(Integer, nullable=True)
    hierarchical_index = Column(String(255), nullable=True)

    dataroom = relationship("Dataroom", back_populates="folders")

    __table_args__ = (
        UniqueConstraint("dataroom_id", "path", name="uq_dataroom_folders_path"),
        Index("idx_drf_dataroom_parent", "dataroom_id", "parent_id"),
    )

    def __repr__(self) -> str:
        return f"<DataroomFolder(id={self.id}, path='{self.path}', index={self.hierarchical_index})>"


class DataroomDocument(Base, AuditMixin):
    """Placement of a document inside a dataroom (distinct id from the document)."""

    __tablename__ = "dataroom_documents"

    id = Column(String(32), primary_key=True, default=new_id)
    dataroom_id = Column(String(32), ForeignKey("datarooms.id", ondelete="CASCADE"), nullable=False)
    document_id = Column(String(32), ForeignKey("documents.id", ondelete="CASCADE"), nullable=False)
    folder_id = Column(String(32), ForeignKey("dataroom_folders.id", ondelete="SET NULL"), nullable=True)
    order_index = Column(Integer, nullable=True)
    hierarchical_index = Column(String(255), nullable=True)

    dataroom = relationship("Dataroom", back_populates="documents")
    document = relationship("Document", lazy="joined")

    __table_args__ = (
        Index("idx_drd_dataroom_folder", "dataroom_id", "folder_id"),
    )

    def __repr__(self) -> str:
        return f"<DataroomDocument(id={self.id}, document_id={self.document_id}, index={self.hierarchical_index})>"
