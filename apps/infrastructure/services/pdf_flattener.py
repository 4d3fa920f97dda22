import base64
import binascii
import io
import logging
import re
from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, List, Optional

from PIL import Image, UnidentifiedImageError
from pypdf import PdfReader, PdfWriter
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas

from apps.domain.models import SignatureField

logger = logging.getLogger('apps')

DATA_URL_PATTERN = re.compile(r'^data:image/[^;]+;base64,(.+)$', re.IGNORECASE | re.DOTALL)

TEXT_FONT = 'Helvetica'
SIGNATURE_FONT = 'Helvetica-Oblique'


class PdfFlattenError(Exception):
    """Raised when the source document cannot be read or written"""
    pass


@dataclass(frozen=True)
class FieldOverlay:
    page: int
    coord_x: float
    coord_y: float
    coord_w: float
    coord_h: float
    field_type: str
    value: str
    signer_name: str = ''


@dataclass(frozen=True)
class Rect:
    x: float
    y: float
    width: float
    height: float


def decode_image_data_url(data_url: Optional[str]) -> Optional[bytes]:
    if not data_url or not data_url.strip():
        return None
    match = DATA_URL_PATTERN.match(data_url.strip())
    if not match:
        return None
    try:
        return base64.b64decode(match.group(1), validate=False)
    except (binascii.Error, ValueError):
        return None


def resolve_rect(page_width: float, page_height: float, overlay: FieldOverlay) -> Rect:
    # coordinates are page fractions measured from the top-left corner
    width = overlay.coord_w * page_width
    height = overlay.coord_h * page_height
    x = overlay.coord_x * page_width
    y = page_height - overlay.coord_y * page_height - height

    clamped_x = max(0.0, min(x, page_width))
    clamped_y = max(0.0, min(y, page_height))
    clamped_w = max(0.0, min(width, page_width - clamped_x))
    clamped_h = max(0.0, min(height, page_height - clamped_y))
    return Rect(clamped_x, clamped_y, clamped_w, clamped_h)


class PdfFlattener:
    """Draws committed field values onto a copy of the source PDF."""

    def flatten(self, source_pdf: bytes, overlays: List[FieldOverlay]) -> bytes:
        try:
            reader = PdfReader(io.BytesIO(source_pdf))
            pages = list(reader.pages)
        except Exception as e:
            logger.error(f'Error reading source PDF: {str(e)}')
            raise PdfFlattenError(f'Failed to read source PDF: {str(e)}') from e

        by_page: Dict[int, List[FieldOverlay]] = defaultdict(list)
        for overlay in overlays:
            page_index = max(0, overlay.page - 1)
            if page_index >= len(pages):
                logger.warning(f'Skipping field on page {overlay.page}: document has {len(pages)} page(s)')
                continue
            by_page[page_index].append(overlay)

        try:
            writer = PdfWriter()
            for index, page in enumerate(pages):
                page_overlays = by_page.get(index)
                if page_overlays:
                    page.merge_page(self._render_overlay_page(page, page_overlays))
                writer.add_page(page)

            output = io.BytesIO()
            writer.write(output)
        except Exception as e:
            logger.error(f'Error rendering signed PDF: {str(e)}')
            raise PdfFlattenError(f'Failed to render signed PDF: {str(e)}') from e
        return output.getvalue()

    def _render_overlay_page(self, page, overlays: List[FieldOverlay]):
        page_width = float(page.mediabox.width)
        page_height = float(page.mediabox.height)

        buffer = io.BytesIO()
        c = canvas.Canvas(buffer, pagesize=(page_width, page_height))
        for overlay in overlays:
            rect = resolve_rect(page_width, page_height, overlay)
            if rect.width <= 0 or rect.height <= 0:
                continue
            self._render_field(c, overlay, rect)
        c.showPage()
        c.save()
        buffer.seek(0)
        return PdfReader(buffer).pages[0]

    def _render_field(self, c: canvas.Canvas, overlay: FieldOverlay, rect: Rect) -> None:
        if overlay.field_type == SignatureField.TYPE_CHECKBOX:
            self._draw_checkbox(c, rect, (overlay.value or '').strip() == 'true')
            return

        if overlay.field_type in SignatureField.IMAGE_TYPES:
            if self._draw_image(c, rect, overlay.value):
                return
            self._draw_text(c, rect, overlay.signer_name, SIGNATURE_FONT)
            return

        self._draw_text(c, rect, overlay.value, TEXT_FONT)

    def _draw_image(self, c: canvas.Canvas, rect: Rect, data_url: str) -> bool:
        image_bytes = decode_image_data_url(data_url)
        if image_bytes is None:
            return False
        try:
            image = Image.open(io.BytesIO(image_bytes))
            image.load()
        except (UnidentifiedImageError, OSError):
            logger.warning('Signature image could not be decoded, drawing signer name instead')
            return False

        if image.mode not in ('RGB', 'RGBA'):
            image = image.convert('RGBA')
        c.drawImage(
            ImageReader(image),
            rect.x,
            rect.y,
            width=rect.width,
            height=rect.height,
            mask='auto',
            preserveAspectRatio=True,
            anchor='sw',
        )
        return True

    def _draw_text(self, c: canvas.Canvas, rect: Rect, value: Optional[str], font: str) -> None:
        text = (value or '').strip()
        if not text:
            return
        font_size = max(8.0, min(16.0, rect.height * 0.6))
        baseline_y = rect.y + max(1.0, (rect.height - font_size) / 2.0)
        c.setFont(font, font_size)
        c.drawString(rect.x + 2.0, baseline_y, text)

    def _draw_checkbox(self, c: canvas.Canvas, rect: Rect, checked: bool) -> None:
        c.rect(rect.x, rect.y, rect.width, rect.height, stroke=1, fill=0)
        if not checked:
            return
        c.line(rect.x + 2.0, rect.y + 2.0, rect.x + rect.width - 2.0, rect.y + rect.height - 2.0)
        c.line(rect.x + 2.0, rect.y + rect.height - 2.0, rect.x + rect.width - 2.0, rect.y + 2.0)
