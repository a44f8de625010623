"""
Uploaded files. Bytes live in the storage backend; this row is the index.
"""

from enum import Enum

from sqlalchemy import String, Text, BigInteger, Boolean, JSON, Index
from sqlalchemy.orm import Mapped, mapped_column

from .base import UserScopedBase


class FileCategory(str, Enum):
    IMAGE = "image"
    DOCUMENT = "document"
    CODE = "code"
    DATA = "data"
    OTHER = "other"


def category_for_mime_type(mime_type: str) -> str:
    mime = (mime_type or "").lower()
    if mime.startswith("image/"):
        return FileCategory.IMAGE.value
    if "pdf" in mime or "document" in mime or "text" in mime:
        return FileCategory.DOCUMENT.value
    if "json" in mime or "csv" in mime or "xml" in mime:
        return FileCategory.DATA.value
    if "javascript" in mime or "python" in mime or "java" in mime:
        return FileCategory.CODE.value
    return FileCategory.OTHER.value


def describe_mime_type(mime_type: str) -> str:
    mime = (mime_type or "").lower()
    if mime.startswith("image/"):
        return "Image"
    if "pdf" in mime:
        return "PDF Document"
    if "document" in mime or "word" in mime:
        return "Document"
    if "spreadsheet" in mime or "excel" in mime:
        return "Spreadsheet"
    if "json" in mime:
        return "JSON Data"
    if "csv" in mime:
        return "CSV Data"
    if "javascript" in mime:
        return "JavaScript Code"
    if "python" in mime:
        return "Python Code"
    if "text" in mime:
        return "Text File"
    return "File"


_SIZE_UNITS = ["Bytes", "KB", "MB", "GB", "TB"]


def format_size(num_bytes: int) -> str:
    """Human readable size, base 1024: 1536 -> '1.5 KB'."""
    if num_bytes <= 0:
        return "0 Bytes"
    value = float(num_bytes)
    unit = 0
    while value >= 1024 and unit < len(_SIZE_UNITS) - 1:
        value /= 1024
        unit += 1
    return f"{round(value, 2):g} {_SIZE_UNITS[unit]}"


def _default_category(context) -> str:
    return category_for_mime_type(context.get_current_parameters().get("mime_type", ""))


class UserFile(UserScopedBase):
    __tablename__ = "files"
    __table_args__ = (
        Index("ix_files_user_category", "user_id", "category"),
        Index("ix_files_user_mime_type", "user_id", "mime_type"),
        Index("ix_files_user_size", "user_id", "size"),
        Index("ix_files_user_created", "user_id", "created_at"),
        Index("ix_files_is_public", "is_public"),
    )

    filename: Mapped[str] = mapped_column(String, nullable=False, index=True)
    original_name: Mapped[str] = mapped_column(String, nullable=False)
    mime_type: Mapped[str] = mapped_column(String, nullable=False)
    size: Mapped[int] = mapped_column(BigInteger, nullable=False)
    path: Mapped[str] = mapped_column(Text, nullable=False)
    url: Mapped[str] = mapped_column(Text, nullable=True)
    category: Mapped[str] = mapped_column(String, nullable=False, default=_default_category)
    metadata_: Mapped[dict] = mapped_column("metadata", JSON, nullable=False, default=dict)
    is_public: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    @property
    def extension(self) -> str:
        parts = (self.original_name or "").split(".")
        return parts[-1].lower() if len(parts) > 1 else ""

    @property
    def size_formatted(self) -> str:
        return format_size(self.size or 0)

    @property
    def type_description(self) -> str:
        return describe_mime_type(self.mime_type)

    def update_metadata(self, new_metadata: dict) -> None:
        self.metadata_ = {**(self.metadata_ or {}), **new_metadata}

    def toggle_public(self) -> None:
        self.is_public = not self.is_public
