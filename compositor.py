import base64
import binascii
import io
import logging

from PIL import Image, ImageDraw, ImageFont, UnidentifiedImageError

logger = logging.getLogger(__name__)

PAGE_BACKGROUND = (255, 255, 255)
DATA_URL_PREFIX = 'data:image/png;base64,'

# Cut-line style: a wide white dash under a narrow black one shifted by half a dash,
# so the line reads on both dark and light artwork.
DASH = 15
GAP = 10
OUTER_STROKE = ('white', 5, 0)
INNER_STROKE = ('black', 3, DASH / 2)

LABEL_SCALE = 0.4
MIN_LABEL_SIZE = 20
LABEL_STROKE = 6
LABEL_FONTS = ('DejaVuSans-Bold.ttf', 'Arial Bold.ttf', 'arialbd.ttf')


def _to_rgba(image):
    # 16-bit grayscale opens as I;16 / I, which RGBA conversion clips to white
    if image.mode.startswith('I'):
        image = image.convert('I').point(lambda v: v * (1 / 256)).convert('L')
    return image.convert('RGBA')


def fit_to_canvas(image, size):
    """Contain-fit `image` into a white canvas of `size`, centred."""
    canvas_w, canvas_h = size
    img_w, img_h = image.size

    # 1. Resize Image (Aspect Ratio Logic)
    ratio = min(canvas_w / img_w, canvas_h / img_h)
    new_w = min(canvas_w, max(1, round(img_w * ratio)))
    new_h = min(canvas_h, max(1, round(img_h * ratio)))
    img_resized = _to_rgba(image).resize((new_w, new_h), Image.Resampling.LANCZOS)

    # 2. Create Canvas & Paste Center, flattening transparency onto the page colour
    canvas = Image.new('RGB', (canvas_w, canvas_h), PAGE_BACKGROUND)
    x_offset = (canvas_w - new_w) // 2
    y_offset = (canvas_h - new_h) // 2
    canvas.paste(img_resized, (x_offset, y_offset), img_resized)
    return canvas


def _dashed_line(draw, start, end, fill, width, phase):
    """Dash one edge; `phase` is where the pattern starts relative to `start`.

    Returns the phase for the next edge so the pattern runs on around corners.
    """
    (x0, y0), (x1, y1) = start, end
    length = abs(x1 - x0) + abs(y1 - y0)
    if length == 0:
        return phase
    dx, dy = (x1 - x0) / length, (y1 - y0) / length
    pos = phase
    while pos < length:
        seg_start = max(pos, 0)
        seg_end = min(pos + DASH, length)
        if seg_end > seg_start:
            draw.line(
                (x0 + dx * seg_start, y0 + dy * seg_start,
                 x0 + dx * seg_end, y0 + dy * seg_end),
                fill=fill, width=width,
            )
        pos += DASH + GAP
    # Step back one period so a dash cut by the corner carries over
    return pos - length - (DASH + GAP)


def draw_dashed_rectangle(draw, box, fill, width, offset=0):
    left, top, right, bottom = box
    corners = [(left, top), (right, top), (right, bottom), (left, bottom)]
    phase = -offset
    for i, start in enumerate(corners):
        phase = _dashed_line(draw, start, corners[(i + 1) % 4], fill, width, phase)


def label_size(panel_width, panel_height):
    return round(max(min(panel_width, panel_height) * LABEL_SCALE, MIN_LABEL_SIZE))


def label_font(size):
    for name in LABEL_FONTS:
        try:
            return ImageFont.truetype(name, size)
        except OSError:
            continue
    return ImageFont.load_default(size=size)


def render_preview(image, plan):
    """Fit the whole poster onto the preview canvas and burn in the cut grid."""
    logger.debug("Rendering %dx%d preview with %d panels", plan.canvas_width, plan.canvas_height, plan.total_panels)
    canvas = fit_to_canvas(image, plan.canvas_size)
    draw = ImageDraw.Draw(canvas)

    font = label_font(label_size(plan.panel_width, plan.panel_height))

    for panel in plan.panels:
        for fill, width, offset in (OUTER_STROKE, INNER_STROKE):
            draw_dashed_rectangle(draw, panel.box, fill, width, offset)

        center = (panel.left + panel.width / 2, panel.top + panel.height / 2)
        label = str(panel.index)
        # Outline pass, then a clean fill pass on top
        draw.text(center, label, font=font, anchor='mm', fill='white',
                  stroke_width=LABEL_STROKE, stroke_fill='black')
        draw.text(center, label, font=font, anchor='mm', fill='white')

    return canvas


def slice_panels(image, plan):
    logger.debug("Slicing %dx%d poster into %d panels", plan.canvas_width, plan.canvas_height, plan.total_panels)
    canvas = fit_to_canvas(image, plan.canvas_size)
    return [(panel, canvas.crop(panel.box)) for panel in plan.panels]


def encode_png(image):
    buffered = io.BytesIO()
    image.save(buffered, format='PNG')
    return DATA_URL_PREFIX + base64.b64encode(buffered.getvalue()).decode()


def decode_image(data):
    """Open a panel image sent back by the client as a data URL or bare base64."""
    if not isinstance(data, str) or not data:
        raise ValueError("Panel image data is missing")
    if data.startswith('data:'):
        _, _, data = data.partition(',')
    try:
        raw = base64.b64decode(data, validate=True)
        img = Image.open(io.BytesIO(raw))
        img.load()
    except (binascii.Error, UnidentifiedImageError, OSError) as exc:
        raise ValueError("Panel image data is not a valid image") from exc
    return img
