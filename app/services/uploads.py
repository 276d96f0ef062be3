from __future__ import annotations

from dataclasses import dataclass

from app.core.exceptions import PayloadTooLarge, UnsupportedFileType, ValidationError

PDF_MIME_TYPES = {"application/pdf"}
PDF_EXTENSIONS = {".pdf"}
ABSTRACT_MIME_TYPES = PDF_MIME_TYPES | {
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
}
ABSTRACT_EXTENSIONS = PDF_EXTENSIONS | {".doc", ".docx"}
IMAGE_MIME_TYPES = {"image/jpeg", "image/jpg", "image/png"}
IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png"}


@dataclass(frozen=True)
class UploadedFile:
    filename: str
    content_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def extension(self) -> str:
        name = (self.filename or "").lower()
        return name[name.rfind("."):] if "." in name else ""

    @property
    def safe_name(self) -> str:
        return (self.filename or "upload").replace("/", "_").replace("\\", "_")


def _check(file: UploadedFile | None, limit: int, mime_types: set[str], extensions: set[str], kind: str) -> UploadedFile:
    if file is None or not file.data:
        raise ValidationError(f"No file uploaded. Please select a {kind}.")
    # size first: an oversized body never reaches storage whatever its type
    if file.size >= limit:
        raise PayloadTooLarge(limit, file.size)
    # browsers often send application/octet-stream, so the extension also counts
    if file.content_type not in mime_types and file.extension not in extensions:
        raise UnsupportedFileType(f"Invalid file type. Only {kind} files are allowed.")
    return file


def check_paper(file: UploadedFile | None, limit: int) -> UploadedFile:
    return _check(file, limit, PDF_MIME_TYPES, PDF_EXTENSIONS, "PDF")


def check_abstract_document(file: UploadedFile | None, limit: int) -> UploadedFile:
    return _check(file, limit, ABSTRACT_MIME_TYPES, ABSTRACT_EXTENSIONS, "PDF, DOC or DOCX")


def check_image(file: UploadedFile | None, limit: int) -> UploadedFile:
    return _check(file, limit, IMAGE_MIME_TYPES, IMAGE_EXTENSIONS, "JPG, JPEG or PNG")
