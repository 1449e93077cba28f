"""
Flask API Server for the enrolment PDF filler.

Endpoints:
- GET  /api/health - Health check
- POST /api/pdf/analyze - Analyze a template's form fields
- POST /api/pdf/fill - Fill a template with applicant data
- POST /api/pdf/process-and-fill - Analyze then fill in one call
- POST /api/pdf - Store a PDF temporarily
- GET  /api/pdf/download?filename=<id> - Download a stored PDF
"""

import logging
from datetime import datetime
from io import BytesIO
from typing import Any, Dict, Optional

from flask import Flask, jsonify, request, send_file
from flask_cors import CORS
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from werkzeug.utils import secure_filename

import config
from errors import InvalidPdfDataError, PdfSaveError
from pdf_cache import PdfCache
from pdf_inspector import PdfAnalysisResult, analyze_pdf
from pdf_serializer import decode_pdf_data_uri, encode_pdf_data_uri
from pdf_writer import fill_pdf, process_and_fill_pdf

# Configure logging
logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL, logging.INFO),
    format="[%(asctime)s] [%(levelname)s] %(message)s"
)
logger = logging.getLogger(__name__)

# Initialize Flask app
app = Flask(__name__)
app.config["MAX_CONTENT_LENGTH"] = config.MAX_UPLOAD_MB * 1024 * 1024
CORS(app)  # Enable CORS for all routes

pdf_cache = PdfCache()
SERVER_START_TIME = datetime.now().isoformat()


# ============================================================================
# Request Schemas
# ============================================================================

class ApiRequest(BaseModel):
    """Request bodies use the portal's camelCase keys; snake_case is accepted too."""
    model_config = ConfigDict(populate_by_name=True)


class AnalyzeRequest(ApiRequest):
    pdf_data_uri: str = Field(alias="pdfDataUri", description="Template as a data URI or bare base64.")


class FieldMappings(ApiRequest):
    clean_to_original: Dict[str, str] = Field(alias="cleanToOriginal")


class FillRequest(ApiRequest):
    pdf_template_data_uri: str = Field(alias="pdfTemplateDataUri")
    form_data: Dict[str, Any] = Field(alias="formData")
    field_mappings: Optional[FieldMappings] = Field(default=None, alias="fieldMappings")


class ProcessAndFillRequest(ApiRequest):
    pdf_template_data_uri: str = Field(alias="pdfTemplateDataUri")
    form_data: Dict[str, Any] = Field(alias="formData")
    skip_processing: bool = Field(default=False, alias="skipProcessing")
    existing_mappings: Optional[PdfAnalysisResult] = Field(default=None, alias="existingMappings")


class StorePdfRequest(ApiRequest):
    pdf_data_uri: str = Field(alias="pdfDataUri")
    filename: str = Field(default="document.pdf")


def _error(message: str, status: int):
    return jsonify({"success": False, "error": message}), status


def _parse_body(model):
    """Validate the JSON body against a request model. Returns (model, error_response)."""
    data = request.get_json(silent=True)
    if not data:
        return None, _error("Request body must be JSON", 400)
    try:
        return model.model_validate(data), None
    except ValidationError as e:
        return None, _error(f"Invalid request: {e.errors(include_url=False)}", 400)


# ============================================================================
# API Routes
# ============================================================================

@app.route("/api/health", methods=["GET"])
def health_check():
    """Health check endpoint."""
    return jsonify({
        "status": "healthy",
        "service": "pdf-filler-api",
        "started_at": SERVER_START_TIME,
    })


@app.route("/api/pdf/analyze", methods=["POST"])
def analyze_pdf_endpoint():
    """
    Analyze a PDF template's form fields.

    Request body:
    {
        "pdfDataUri": "data:application/pdf;base64,..."
    }

    Response:
    {
        "success": true,
        "analysis": {
            "original_to_clean": {...},
            "clean_to_original": {...},
            "field_metadata": [...],
            "total_fields": 42,
            "form_structure": {"sections": [...], "field_groups": {...}}
        }
    }
    """
    body, error = _parse_body(AnalyzeRequest)
    if error:
        return error

    try:
        pdf_bytes = decode_pdf_data_uri(body.pdf_data_uri)
    except InvalidPdfDataError as e:
        return _error(str(e), 400)

    analysis = analyze_pdf(pdf_bytes)
    return jsonify({"success": True, "analysis": analysis.model_dump()})


@app.route("/api/pdf/fill", methods=["POST"])
def fill_pdf_endpoint():
    """
    Fill a PDF template with applicant data.

    Request body:
    {
        "pdfTemplateDataUri": "data:application/pdf;base64,...",
        "formData": {"firstName": "John", "dependents": [...], ...},
        "fieldMappings": {"cleanToOriginal": {...}}     // optional, skips the AI call
    }

    Response:
    {
        "success": true,
        "filled_pdf_data_uri": "data:application/pdf;base64,...",
        "stats": {"success_count": 12, "error_count": 1, ...}
    }
    """
    body, error = _parse_body(FillRequest)
    if error:
        return error

    try:
        template_bytes = decode_pdf_data_uri(body.pdf_template_data_uri)
        mappings = body.field_mappings.clean_to_original if body.field_mappings else None
        result = fill_pdf(template_bytes, body.form_data, clean_to_original=mappings)
    except InvalidPdfDataError as e:
        return _error(str(e), 400)
    except PdfSaveError as e:
        logger.error(f"Fill failed: {e}")
        return _error(str(e), 500)

    logger.info(f"Filled PDF: {result.stats}")
    return jsonify({
        "success": True,
        "filled_pdf_data_uri": encode_pdf_data_uri(result.pdf_bytes),
        "stats": result.to_dict(),
    })


@app.route("/api/pdf/process-and-fill", methods=["POST"])
def process_and_fill_endpoint():
    """
    Analyze a template (unless skipped) and fill it.

    Request body:
    {
        "pdfTemplateDataUri": "data:application/pdf;base64,...",
        "formData": {...},
        "skipProcessing": false,
        "existingMappings": {...}     // a previous analysis, used with skipProcessing
    }
    """
    body, error = _parse_body(ProcessAndFillRequest)
    if error:
        return error

    try:
        template_bytes = decode_pdf_data_uri(body.pdf_template_data_uri)
        result = process_and_fill_pdf(
            template_bytes,
            body.form_data,
            skip_processing=body.skip_processing,
            existing_analysis=body.existing_mappings,
        )
    except InvalidPdfDataError as e:
        return _error(str(e), 400)
    except PdfSaveError as e:
        logger.error(f"Process-and-fill failed: {e}")
        return _error(str(e), 500)

    return jsonify({
        "success": True,
        "filled_pdf_data_uri": encode_pdf_data_uri(result.fill.pdf_bytes),
        "analysis": result.analysis.model_dump(),
        "debug_info": result.debug_info,
        "stats": result.fill.to_dict(),
    })


@app.route("/api/pdf", methods=["POST"])
def store_pdf():
    """
    Store a PDF for later download.

    Request body:
    {
        "pdfDataUri": "data:application/pdf;base64,...",
        "filename": "enrolment.pdf"
    }

    Response:
    {
        "success": true,
        "id": "0b7c...",
        "download_url": "/api/pdf/download?filename=0b7c..."
    }
    """
    body, error = _parse_body(StorePdfRequest)
    if error:
        return error

    try:
        pdf_bytes = decode_pdf_data_uri(body.pdf_data_uri)
    except InvalidPdfDataError as e:
        return _error(str(e), 400)

    filename = secure_filename(body.filename) or "document.pdf"
    pdf_id = pdf_cache.put(pdf_bytes, filename)
    return jsonify({
        "success": True,
        "id": pdf_id,
        "download_url": f"/api/pdf/download?filename={pdf_id}",
    })


@app.route("/api/pdf/download", methods=["GET"])
def download_pdf():
    """Download a stored PDF by id (?filename=<id>)."""
    pdf_id = request.args.get("filename")
    if not pdf_id:
        return _error("Missing required parameter: filename", 400)

    entry = pdf_cache.get(pdf_id)
    if entry is None:
        return _error(f"PDF not found or expired: {pdf_id}", 404)

    return send_file(
        BytesIO(entry.pdf_bytes),
        mimetype="application/pdf",
        as_attachment=True,
        download_name=entry.filename,
    )


# ============================================================================
# Error Handlers
# ============================================================================

@app.errorhandler(404)
def not_found(e):
    return jsonify({"success": False, "error": "Endpoint not found"}), 404


@app.errorhandler(413)
def payload_too_large(e):
    return jsonify({"success": False, "error": f"Upload exceeds {config.MAX_UPLOAD_MB} MB"}), 413


@app.errorhandler(500)
def server_error(e):
    return jsonify({"success": False, "error": "Internal server error"}), 500


# ============================================================================
# Main Entry Point
# ============================================================================

if __name__ == "__main__":
    logger.info(f"Starting server on port {config.PORT}")
    logger.info(f"Server start time: {SERVER_START_TIME}")
    app.run(host="0.0.0.0", port=config.PORT, debug=config.FLASK_DEBUG)
