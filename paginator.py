import io
import logging

from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas

logger = logging.getLogger(__name__)


def build_pdf(images, page_size):
    """Lay each panel image edge to edge on its own page, in the order given.

    The whole document is written into memory before the bytes are returned.
    """
    if not images:
        raise ValueError("At least one panel is required")

    page_w, page_h = page_size
    pdf_io = io.BytesIO()
    c = canvas.Canvas(pdf_io, pagesize=(page_w, page_h), pageCompression=1)

    for img in images:
        # Feed each panel through its own ImageReader, never a shared file path
        if img.mode not in ('RGB', 'L'):
            img = img.convert('RGB')
        c.drawImage(ImageReader(img), 0, 0, width=page_w, height=page_h)
        c.showPage()

    c.save()
    logger.info("Built %d-page PDF at %sx%s pt", len(images), page_w, page_h)
    return pdf_io.getvalue()


def export_filename(orientation, paper_size, rows, cols):
    return f"poster-{orientation}-{paper_size}-{rows}x{cols}.pdf"
