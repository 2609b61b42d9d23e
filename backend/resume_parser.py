import asyncio
import os

import docx2txt
import fitz  # PyMuPDF

from errors import ResumeParseError

MIN_TEXT_LENGTH = 50
MAX_RESUME_BYTES = 10 * 1024 * 1024

PDF_MIME = "application/pdf"
DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
GENERIC_MIMES = {"", "application/octet-stream"}

ALLOWED_TYPES = {
    ".pdf": (PDF_MIME, b"%PDF"),
    ".docx": (DOCX_MIME, b"PK\x03\x04"),
}


def validate_resume_upload(filename: str, mime_type: str, data: bytes) -> str:
    """Check extension, MIME type and magic bytes agree. Returns the extension."""
    ext = os.path.splitext(filename or "")[1].lower()
    if ext not in ALLOWED_TYPES:
        raise ResumeParseError("Resume must be a PDF or DOCX file")
    expected_mime, magic = ALLOWED_TYPES[ext]
    mime = (mime_type or "").split(";")[0].strip().lower()
    if mime not in GENERIC_MIMES and mime != expected_mime:
        raise ResumeParseError(f"File extension {ext} does not match content type {mime}")
    if not data:
        raise ResumeParseError("Resume file is empty")
    if len(data) > MAX_RESUME_BYTES:
        raise ResumeParseError("Resume file is larger than 10 MB")
    if not data.startswith(magic):
        raise ResumeParseError(f"File content is not a valid {ext[1:].upper()} document")
    return ext


def extract_pdf_text(file_bytes: bytes) -> str:
    doc = fitz.open(stream=file_bytes, filetype="pdf")
    text = ""
    for page in doc:
        text += page.get_text()
    doc.close()
    return text


def _parse(file_path: str, ext: str) -> str:
    if ext == ".pdf":
        with open(file_path, "rb") as fh:
            return extract_pdf_text(fh.read())
    return docx2txt.process(file_path) or ""


async def parse_resume_file(file_path: str, mime_type: str, original_name: str) -> str:
    with open(file_path, "rb") as fh:
        data = fh.read()
    ext = validate_resume_upload(original_name, mime_type, data)
    try:
        text = await asyncio.to_thread(_parse, file_path, ext)
    except Exception as e:
        print(f"[RESUME] Text extraction failed for {original_name}: {e}")
        raise ResumeParseError("Could not extract text from the resume") from e

    text = text.strip()
    if len(text) < MIN_TEXT_LENGTH:
        raise ResumeParseError("Resume contains too little text to analyze")
    print(f"[RESUME] Extracted {len(text)} chars from {original_name}")
    return text
