from flask import Flask, render_template, request, send_file, send_from_directory, jsonify, abort
from PIL import Image, UnidentifiedImageError
from werkzeug.exceptions import HTTPException
from werkzeug.security import safe_join
from werkzeug.utils import secure_filename
import io
import os
import time
import logging

import compositor
import paginator
import poster_grid

app = Flask(__name__)

# --- CONFIGURATION ---
app.config.from_mapping(
    INPUT_DIR=os.path.abspath('input'),
    MAX_CONTENT_LENGTH=32 * 1024 * 1024,
)
app.config.from_prefixed_env()

FAILURE_MESSAGES = {
    'upload': "Failed to upload file",
    'preview_grid': "Failed to generate preview grid",
    'process_image': "Failed to process image",
    'export_pdf': "Failed to generate PDF",
}


@app.errorhandler(HTTPException)
def handle_http_error(err):
    return jsonify({'error': err.description}), err.code


@app.errorhandler(Exception)
def handle_unexpected_error(err):
    app.logger.exception("Unhandled error in %s", request.endpoint)
    message = FAILURE_MESSAGES.get(request.endpoint, "Internal server error")
    return jsonify({'error': message}), 500


def read_grid_request():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        abort(400, description="Expected a JSON object")
    if not data.get('filename'):
        abort(400, description="No filename provided")
    try:
        rows, cols = poster_grid.validate_grid(data.get('rows'), data.get('cols'))
    except poster_grid.GridError as err:
        abort(400, description=str(err))
    orientation = poster_grid.resolve_orientation(data.get('orientation'))
    paper_size = poster_grid.resolve_paper_size(data.get('paperSize'))
    return data['filename'], rows, cols, orientation, paper_size


def open_source(filename):
    path = safe_join(app.config['INPUT_DIR'], filename)
    if path is None or not os.path.isfile(path):
        abort(404, description="File not found")
    try:
        img = Image.open(path)
        img.load()
    except (UnidentifiedImageError, OSError):
        abort(400, description="Invalid image")
    return img


@app.route('/')
def index():
    return render_template('index.html')


@app.route('/api/upload', methods=['POST'])
def upload():
    file = request.files.get('image')
    if file is None or file.mimetype != 'image/png':
        abort(400, description="Invalid PNG file")

    try:
        with Image.open(file.stream) as probe:
            fmt = probe.format
    except (UnidentifiedImageError, OSError):
        fmt = None
    if fmt != 'PNG':
        abort(400, description="Invalid PNG file")
    file.stream.seek(0)

    filename = f"{int(time.time() * 1000)}-{secure_filename(file.filename) or 'image.png'}"
    os.makedirs(app.config['INPUT_DIR'], exist_ok=True)
    file.save(os.path.join(app.config['INPUT_DIR'], filename))
    app.logger.info("Stored upload as %s", filename)
    return jsonify({'filename': filename})


@app.route('/input/<path:filename>')
def input_file(filename):
    return send_from_directory(app.config['INPUT_DIR'], filename, mimetype='image/png')


@app.route('/api/preview-grid', methods=['POST'])
def preview_grid():
    filename, rows, cols, orientation, paper_size = read_grid_request()
    img = open_source(filename)

    plan = poster_grid.plan_preview(paper_size, orientation, rows, cols)
    preview = compositor.render_preview(img, plan)

    panel_labels = [
        {
            'id': i,
            'index': panel.index,
            'row': panel.row,
            'col': panel.col,
            'x': panel.left,
            'y': panel.top,
            'width': panel.width,
            'height': panel.height,
        }
        for i, panel in enumerate(plan.panels)
    ]
    return jsonify({
        'previewImage': compositor.encode_png(preview),
        'panelLabels': panel_labels,
        'totalPanels': plan.total_panels,
    })


@app.route('/api/process-image', methods=['POST'])
def process_image():
    filename, rows, cols, orientation, paper_size = read_grid_request()
    img = open_source(filename)

    plan = poster_grid.plan_export(paper_size, orientation, rows, cols, img.size)
    app.logger.info(
        "Slicing %s into %dx%d panels of %dx%d px (scale %.3f)",
        filename, rows, cols, plan.panel_width, plan.panel_height, plan.scale_factor,
    )

    panels = []
    for i, (panel, tile) in enumerate(compositor.slice_panels(img, plan)):
        panels.append({
            'id': i,
            'imageData': compositor.encode_png(tile),
            'width': panel.width,
            'height': panel.height,
            'row': panel.row,
            'col': panel.col,
            'panelIndex': panel.index,
            'totalPanels': plan.total_panels,
        })
    return jsonify({'panels': panels})


def grid_dimensions(data, panels):
    """Use the client's rows/cols when valid, else infer them from panel metadata."""
    try:
        return poster_grid.validate_grid(data.get('rows'), data.get('cols'))
    except poster_grid.GridError:
        pass
    try:
        rows = max(int(p['row']) for p in panels) + 1
        cols = max(int(p['col']) for p in panels) + 1
    except (KeyError, TypeError, ValueError):
        return 1, len(panels)
    return rows, cols


@app.route('/api/export-pdf', methods=['POST'])
def export_pdf():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        abort(400, description="Expected a JSON object")
    panels = data.get('panels')
    if not isinstance(panels, list) or not panels:
        abort(400, description="No panels provided")

    orientation = poster_grid.resolve_orientation(data.get('orientation'))
    paper_size = poster_grid.resolve_paper_size(data.get('paperSize'))
    page_size = poster_grid.oriented_page_size(paper_size, orientation)

    images = []
    for panel in panels:
        if not isinstance(panel, dict):
            abort(400, description="Invalid panel")
        try:
            images.append(compositor.decode_image(panel.get('imageData')))
        except ValueError as err:
            abort(400, description=str(err))

    pdf_bytes = paginator.build_pdf(images, page_size)
    rows, cols = grid_dimensions(data, panels)

    return send_file(
        io.BytesIO(pdf_bytes),
        as_attachment=True,
        download_name=paginator.export_filename(orientation, paper_size, rows, cols),
        mimetype='application/pdf',
    )


if __name__ == '__main__':
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
    os.makedirs(app.config['INPUT_DIR'], exist_ok=True)
    app.run(debug=True)
