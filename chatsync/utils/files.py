from enum import Enum


class FileKind(str, Enum):
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    PDF = "pdf"
    DOCUMENT = "document"
    SPREADSHEET = "spreadsheet"
    PRESENTATION = "presentation"
    ARCHIVE = "archive"
    TEXT = "text"
    GENERIC = "generic"


DOCUMENT_TYPES = {
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/vnd.oasis.opendocument.text",
    "application/rtf",
}
SPREADSHEET_TYPES = {
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "application/vnd.oasis.opendocument.spreadsheet",
    "text/csv",
}
PRESENTATION_TYPES = {
    "application/vnd.ms-powerpoint",
    "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    "application/vnd.oasis.opendocument.presentation",
}
ARCHIVE_TYPES = {
    "application/zip",
    "application/x-zip-compressed",
    "application/x-rar-compressed",
    "application/vnd.rar",
    "application/x-7z-compressed",
    "application/x-tar",
    "application/gzip",
    "application/x-gzip",
}


def classify_mime(mime_type: str) -> FileKind:
    mime = (mime_type or "").split(";", 1)[0].strip().lower()
    if mime.startswith("image/"):
        return FileKind.IMAGE
    if mime.startswith("video/"):
        return FileKind.VIDEO
    if mime.startswith("audio/"):
        return FileKind.AUDIO
    if mime == "application/pdf":
        return FileKind.PDF
    if mime in DOCUMENT_TYPES:
        return FileKind.DOCUMENT
    # csv is text/* but renders as a sheet
    if mime in SPREADSHEET_TYPES:
        return FileKind.SPREADSHEET
    if mime in PRESENTATION_TYPES:
        return FileKind.PRESENTATION
    if mime in ARCHIVE_TYPES:
        return FileKind.ARCHIVE
    if mime.startswith("text/"):
        return FileKind.TEXT
    return FileKind.GENERIC


def format_file_size(size: int) -> str:
    if size <= 0:
        return "0 Bytes"
    units = ["Bytes", "KB", "MB", "GB", "TB"]
    value = float(size)
    index = 0
    while value >= 1024 and index < len(units) - 1:
        value /= 1024
        index += 1
    if index == 0:
        return f"{int(value)} Bytes"
    return f"{round(value, 2):g} {units[index]}"
