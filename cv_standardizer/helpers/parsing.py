import io
import os
import re
from pathlib import Path
from typing import Union

import requests
from docx import Document
from pdfminer.high_level import extract_text as pdf_extract

from cv_standardizer.models.models import ResumeRef
from cv_standardizer.utils.exceptions import ExtractionFailure, UnsupportedFormat
from cv_standardizer.utils.logging_config import get_logger

logger = get_logger(__name__)

DOCX_MIME_MARKERS = ("officedocument", "msword", "wordprocessingml")


def read_txt(data: bytes) -> str:
    return data.decode("utf-8", errors="ignore")


def read_docx(data: bytes) -> str:
    doc = Document(io.BytesIO(data))
    return "\n".join([p.text for p in doc.paragraphs])


def read_pdf(data: bytes) -> str:
    try:
        return pdf_extract(io.BytesIO(data))
    except Exception as e:
        # fallback to unstructured
        logger.warning(f"pdfminer failed ({e}), falling back to unstructured")
        from unstructured.partition.auto import partition
        elems = partition(file=io.BytesIO(data))
        return "\n".join([el.text for el in elems if hasattr(el, "text") and el.text])


def clean_text(x: str) -> str:
    x = x.replace("\x00", "")
    x = re.sub(r"[ \t]+", " ", x)
    x = re.sub(r"\n\s*\n\s*\n+", "\n\n", x)
    return x.strip()


def read_resume_bytes(ref: ResumeRef, resume_root: str, timeout: float = 30.0) -> bytes:
    if re.match(r"^https?://", ref.url, re.IGNORECASE):
        try:
            resp = requests.get(ref.url, timeout=timeout)
            resp.raise_for_status()
        except requests.RequestException as e:
            raise ExtractionFailure(f"Failed to fetch resume: {e}", file_ref=ref.url, cause=e) from e
        return resp.content

    root = Path(resume_root).resolve()
    path = (root / ref.url.lstrip("/")).resolve()
    if root != path and root not in path.parents:
        raise ExtractionFailure("Resume path escapes the resume root", file_ref=ref.url)
    return path.read_bytes()


def extract_text(file_ref: Union[ResumeRef, dict], resume_root: str = "./public") -> str:
    """
    Read a resume and return its plain text.

    PDF goes through pdfminer (unstructured as fallback), DOCX through
    python-docx, text/* and .txt are decoded as UTF-8.

    Raises:
        UnsupportedFormat: neither mime type nor extension is supported
        OSError: a local file cannot be read
        ExtractionFailure: a remote file cannot be fetched
    """
    ref = file_ref if isinstance(file_ref, ResumeRef) else ResumeRef.model_validate(file_ref)
    mime = (ref.mime or "").lower()
    ext = (ref.ext or os.path.splitext(ref.url)[1]).lower()
    if ext and not ext.startswith("."):
        ext = f".{ext}"

    if "pdf" in mime or ext == ".pdf":
        reader = read_pdf
    elif any(m in mime for m in DOCX_MIME_MARKERS) or ext == ".docx":
        reader = read_docx
    elif mime.startswith("text/") or ext == ".txt":
        reader = read_txt
    else:
        raise UnsupportedFormat(
            f"Unsupported resume file type (mime={ref.mime or 'unknown'}, ext={ref.ext or ext or 'none'})",
            file_ref=ref.url, mime=ref.mime, ext=ext,
        )

    data = read_resume_bytes(ref, resume_root)
    text = clean_text(reader(data))
    logger.debug(f"Extracted {len(text)} chars from {ref.url}")
    return text
