"""
Document parsing service for client briefs and kickoff documents.

Accepts raw upload bytes (PDF, DOCX, any image/* type) or a Google Docs link
and returns a ParsedDocument with the plain text and a small metadata dict
(pageCount, format, language, hasImages, hasTables).

Scanned or badly-encoded PDFs (common with Hebrew exports) are detected and
re-read page by page with Tesseract OCR; if OCR also comes back empty and a
Gemini key is configured, the file is sent to Gemini vision instead.
"""
from __future__ import annotations

import io
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import fitz  # PyMuPDF
import httpx
import pytesseract
from docx import Document as DocxDocument
from docx.oxml.ns import qn
from PIL import Image

from docmaker.config import settings
from docmaker.services.gemini_client import GeminiClient, InlineImage

logger = logging.getLogger(__name__)

PDF_MIME = "application/pdf"
DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"

_HEBREW = re.compile(r"[\u0590-\u05FF]")
_LATIN = re.compile(r"[a-zA-Z]")
_REPLACEMENT = re.compile(r"[\uFFFD\uFEFF]")
_NUMERIC_ROW = re.compile(r"\d+\s+\d+\s+\d+")
_GOOGLE_DOC_ID = re.compile(r"/document/d/([a-zA-Z0-9_-]+)")

_VISION_OCR_PROMPT = (
    "חלץ את כל תוכן הטקסט מהמסמך הזה. שמור על מבנה הכותרות, פסקאות, רשימות וטבלאות. "
    "המסמך עשוי להיות בעברית. החזר את הטקסט הגולמי בלבד, ללא הערות."
)


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------

@dataclass
class ParsedDocument:
    """
    Output of the DocumentParser.

    Attributes:
        text:      Complete plain text of the document.
        metadata:  Dict with keys: format, language, hasImages, hasTables and,
                   for PDFs, pageCount.
    """

    text: str
    metadata: Dict[str, Any] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Text heuristics
# ---------------------------------------------------------------------------

def detect_hebrew(text: str) -> bool:
    """True when the text holds more than 10 Hebrew characters."""
    return len(_HEBREW.findall(text)) > 10


def detect_language(text: str) -> str:
    return "he" if detect_hebrew(text) else "en"


def is_garbled_text(text: str) -> bool:
    """
    Detect text extracted with a broken font encoding.

    Short samples (< 50 non-space chars) are never considered garbled.
    """
    total = len(re.sub(r"\s", "", text))
    if total < 50:
        return False

    hebrew = len(_HEBREW.findall(text))
    latin = len(_LATIN.findall(text))
    if hebrew == 0 and latin < total * 0.3:
        return True

    if len(_REPLACEMENT.findall(text)) > total * 0.1:
        return True

    return False


def has_tables(text: str) -> bool:
    return "\t" in text or bool(_NUMERIC_ROW.search(text))


def extract_google_doc_id(url: str) -> str:
    match = _GOOGLE_DOC_ID.search(url or "")
    if not match:
        raise ValueError(
            "Invalid Google Docs URL. Expected format: https://docs.google.com/document/d/..."
        )
    return match.group(1)


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------

class DocumentParser:
    """Parses brief uploads into ParsedDocument objects."""

    MIN_PDF_TEXT_CHARS: int = 100
    MIN_TEXT_CHARS: int = 10
    GOOGLE_EXPORT_URL = "https://docs.google.com/document/d/{doc_id}/export?format=txt"
    # formats Gemini vision accepts as-is; anything else is re-encoded to PNG
    VISION_MIME_TYPES = ("image/png", "image/jpeg", "image/webp", "image/heic", "image/heif")

    def __init__(self) -> None:
        if settings.TESSERACT_CMD:
            pytesseract.pytesseract.tesseract_cmd = settings.TESSERACT_CMD
        self.ocr_languages = settings.OCR_LANGUAGES
        self.gemini = GeminiClient()

    async def parse_document(
        self,
        content: bytes,
        mime_type: str,
        filename: Optional[str] = None,
    ) -> ParsedDocument:
        """
        Parse an uploaded file, dispatching on its MIME type.

        Raises:
            ValueError:   Unsupported type or file over MAX_FILE_SIZE.
            RuntimeError: Unreadable file or no extractable text.
        """
        logger.info("Parsing %s (%s, %s bytes)", filename or "upload", mime_type, f"{len(content):,}")

        if len(content) > settings.MAX_FILE_SIZE:
            raise ValueError(
                f"File too large. Maximum size is {settings.MAX_FILE_SIZE // (1024 * 1024)}MB. "
                f"Got {round(len(content) / 1024 / 1024)}MB."
            )

        mime_type = (mime_type or "").lower()
        if mime_type == PDF_MIME:
            return await self._parse_pdf(content)
        if mime_type == DOCX_MIME or (filename or "").lower().endswith(".docx"):
            return await self._parse_docx(content)
        if mime_type.startswith("image/"):
            return await self._parse_image(content, mime_type)

        raise ValueError(
            f"Unsupported file format: {mime_type or 'unknown'}. "
            "Supported formats: PDF, Word (DOCX), images."
        )

    # ------------------------------------------------------------------
    # PDF
    # ------------------------------------------------------------------

    async def _parse_pdf(self, content: bytes) -> ParsedDocument:
        """Extract the text layer; fall back to OCR for scanned or garbled PDFs."""
        try:
            doc = fitz.open(stream=content, filetype="pdf")
        except Exception as exc:
            raise RuntimeError(f"Cannot open PDF file: {exc}") from exc

        if doc.needs_pass:
            doc.close()
            raise RuntimeError("PDF is password-protected. Please provide an unlocked copy.")

        try:
            page_count = doc.page_count
            text = "\n".join(page.get_text("text") for page in doc).strip()

            if len(re.sub(r"\s", "", text)) > self.MIN_PDF_TEXT_CHARS and not is_garbled_text(text):
                logger.info("PDF text layer OK: %d chars, %d pages", len(text), page_count)
                return ParsedDocument(
                    text=text,
                    metadata={
                        "pageCount": page_count,
                        "format": "pdf",
                        "language": detect_language(text),
                        "hasImages": False,
                        "hasTables": has_tables(text),
                    },
                )

            logger.info("PDF text layer unusable, running OCR on %d pages", page_count)
            ocr_text = "\n\n".join(
                t for t in (self._ocr_page(page) for page in doc) if t.strip()
            ).strip()
        finally:
            doc.close()

        if len(ocr_text) < self.MIN_TEXT_CHARS:
            ocr_text = await self._vision_ocr(content, PDF_MIME)
        if len(ocr_text) < self.MIN_TEXT_CHARS:
            raise RuntimeError("PDF contains no extractable text.")

        return ParsedDocument(
            text=ocr_text,
            metadata={
                "pageCount": page_count,
                "format": "pdf-ocr",
                "language": detect_language(ocr_text),
                "hasImages": True,
                "hasTables": has_tables(ocr_text),
            },
        )

    def _ocr_page(self, page: fitz.Page) -> str:
        """Render an entire page at 2x scale and run Tesseract OCR."""
        try:
            pix = page.get_pixmap(matrix=fitz.Matrix(2, 2))
            img = Image.open(io.BytesIO(pix.tobytes("png")))
            return pytesseract.image_to_string(img, lang=self.ocr_languages)
        except Exception as exc:
            logger.warning(f"Full-page OCR failed on page {page.number + 1}: {exc}")
            return ""

    # ------------------------------------------------------------------
    # DOCX
    # ------------------------------------------------------------------

    async def _parse_docx(self, content: bytes) -> ParsedDocument:
        """Read paragraphs and tables in document order."""
        try:
            doc = DocxDocument(io.BytesIO(content))
        except Exception as exc:
            raise RuntimeError(f"Cannot open DOCX file: {exc}") from exc

        blip_tag = qn("a:blip")
        parts: List[str] = []
        found_images = False

        for para in doc.paragraphs:
            text = para.text.strip()
            if text:
                parts.append(text)
            if not found_images and next(para._element.iter(blip_tag), None) is not None:
                found_images = True

        for table in doc.tables:
            rows: List[str] = []
            for row in table.rows:
                cells = [cell.text.strip() for cell in row.cells]
                non_empty = [c for c in cells if c]
                if non_empty:
                    rows.append("\t".join(non_empty))
            if rows:
                parts.append("\n".join(rows))

        text = "\n".join(parts).strip()
        if len(text) < self.MIN_TEXT_CHARS:
            raise RuntimeError("DOCX file contains no readable text")

        logger.info(
            "DOCX extracted: %d chars, tables: %s, images: %s",
            len(text), bool(doc.tables), found_images,
        )
        return ParsedDocument(
            text=text,
            metadata={
                "format": "docx",
                "language": detect_language(text),
                "hasImages": found_images,
                "hasTables": bool(doc.tables),
            },
        )

    # ------------------------------------------------------------------
    # Images
    # ------------------------------------------------------------------

    async def _parse_image(self, content: bytes, mime_type: str) -> ParsedDocument:
        """OCR a photo or screenshot of a document."""
        img: Optional[Image.Image] = None
        try:
            img = Image.open(io.BytesIO(content))
            # GIF/BMP/TIFF/palette images are flattened to RGB before OCR
            img = img.convert("RGB")
        except Exception as exc:
            logger.warning(f"Cannot decode {mime_type} with Pillow: {exc}")

        text = ""
        if img is not None:
            try:
                text = pytesseract.image_to_string(img, lang=self.ocr_languages).strip()
            except Exception as exc:
                logger.warning(f"Image OCR failed: {exc}")

        if len(text) < self.MIN_TEXT_CHARS:
            if mime_type in self.VISION_MIME_TYPES or img is None:
                text = await self._vision_ocr(content, mime_type)
            else:
                buf = io.BytesIO()
                img.save(buf, format="PNG")
                text = await self._vision_ocr(buf.getvalue(), "image/png")

        if len(text) < self.MIN_TEXT_CHARS:
            raise RuntimeError("Could not extract text from image. Try a higher quality image.")

        return ParsedDocument(
            text=text,
            metadata={
                "format": "image-ocr",
                "language": detect_language(text),
                "hasImages": True,
                "hasTables": False,
            },
        )

    async def _vision_ocr(self, content: bytes, mime_type: str) -> str:
        if not self.gemini.is_configured:
            return ""
        logger.info("Falling back to Gemini vision OCR (%s)", mime_type)
        text = await self.gemini.generate(
            _VISION_OCR_PROMPT,
            model=self.gemini.flash_model,
            temperature=0.1,
            images=[InlineImage(data=content, mime_type=mime_type)],
        )
        return text.strip()

    # ------------------------------------------------------------------
    # Google Docs
    # ------------------------------------------------------------------

    async def parse_google_doc(self, url: str) -> ParsedDocument:
        """
        Fetch a Google Doc shared as "anyone with the link" via its text export.

        Raises:
            ValueError:   Not a Google Docs document URL.
            RuntimeError: The export failed or the document is empty.
        """
        doc_id = extract_google_doc_id(url)
        export_url = self.GOOGLE_EXPORT_URL.format(doc_id=doc_id)
        logger.info("Exporting Google Doc %s", doc_id)

        try:
            async with httpx.AsyncClient(timeout=30.0, follow_redirects=True) as client:
                resp = await client.get(export_url)
        except httpx.HTTPError as exc:
            raise RuntimeError(f"Failed to read Google Doc: {exc}") from exc

        content_type = resp.headers.get("content-type", "")
        if resp.status_code in (401, 403, 404) or "text/html" in content_type:
            raise RuntimeError(
                "No access to the document. Share it as 'anyone with the link', "
                "or export it as PDF and upload it instead."
            )
        if resp.status_code != 200:
            raise RuntimeError(f"Failed to read Google Doc: HTTP {resp.status_code}")

        text = resp.text.lstrip("\ufeff").strip()
        if len(text) < self.MIN_TEXT_CHARS:
            raise RuntimeError("Document appears to be empty")

        return ParsedDocument(
            text=text,
            metadata={
                "format": "google-docs",
                "language": detect_language(text),
                "hasImages": False,
                "hasTables": "\t" in text,
            },
        )
