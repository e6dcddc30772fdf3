import os
from datetime import datetime
import logging

from flask import Flask, Response, g, jsonify, request, stream_with_context
from flask_cors import CORS

from config import config

# Configuration du logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[
        logging.FileHandler(os.path.join(config.LOG_FOLDER, "stock_opname.log")),
        logging.StreamHandler(),
    ],
)
logger = logging.getLogger(__name__)

# Imports des services
from database import db_manager
from services.acuan_service import AcuanService
from services.ascend_service import AscendService
from services.hasil_service import HasilService
from services.label_validator import LabelValidator
from services.notification_service import notification_manager
from services.query_builder import LabelFilter
from services.scan_recorder import ScanRecorder
from services.stock_opname_service import StockOpnameService
from utils.auth_context import current_user_id, current_username, require_user
from utils.error_handler import APIErrorHandler, MissingFieldError, handle_api_errors
from utils.rate_limiter import apply_rate_limit
from utils.validators import RequestValidator

app = Flask(__name__)
CORS(app, expose_headers=["Retry-After", "X-RateLimit-Remaining-Minute"])
app.secret_key = config.SECRET_KEY

# Initialisation des services
stock_opname_service = StockOpnameService()
acuan_service = AcuanService()
hasil_service = HasilService()
label_validator = LabelValidator(stock_opname_service=stock_opname_service)
scan_recorder = ScanRecorder(publisher=notification_manager)
ascend_service = AscendService()


def _list_filters(args, username=None) -> LabelFilter:
    return LabelFilter(
        blok=RequestValidator.normalize_blok(args.get("blok")),
        idlokasi=RequestValidator.parse_idlokasi(args.get("idlokasi")),
        search=(args.get("search") or "").strip() or None,
        username=username,
    )


@app.teardown_appcontext
def remove_db_sessions(exception=None):
    db_manager.close_session()


# --- Campagnes ---

@app.route("/no-stock-opname", methods=["GET"])
@require_user()
@apply_rate_limit()
@handle_api_errors("list_stock_opname")
def list_stock_opname():
    """NoSO ouverts (postérieurs à la dernière clôture)"""
    logger.info(f"GET /no-stock-opname par {current_username()}")
    batches = stock_opname_service.list_open_batches()
    if not batches:
        return jsonify({
            "success": False,
            "message": "Saat ini sedang tidak ada Jadwal Stock Opname",
        }), 404
    return jsonify({"success": True, "message": "OK", "data": batches})


@app.route("/no-stock-opname/<noso>/acuan", methods=["GET"])
@require_user()
@apply_rate_limit()
@handle_api_errors("stock_opname_acuan")
def stock_opname_acuan(noso: str):
    page, page_size = RequestValidator.parse_pagination(request.args)
    filter_by = request.args.get("filterBy", "all")
    filters = _list_filters(request.args)

    logger.info(f"Acuan {noso} - {current_username()} catégorie={filter_by} search={filters.search}")
    result = acuan_service.resolve_acuan(noso, page, page_size, filter_by, filters)
    return jsonify(result)


@app.route("/no-stock-opname/<noso>/hasil", methods=["GET"])
@require_user()
@apply_rate_limit()
@handle_api_errors("stock_opname_hasil")
def stock_opname_hasil(noso: str):
    page, page_size = RequestValidator.parse_pagination(request.args)
    filter_by = request.args.get("filterBy", "all")
    by_user = RequestValidator.parse_bool(request.args.get("filterbyuser", "false"))
    filters = _list_filters(request.args, username=current_username() if by_user else None)

    result = hasil_service.list_hasil(noso, page, page_size, filter_by, filters)
    return jsonify(result)


@app.route("/no-stock-opname/<noso>/hasil", methods=["DELETE"])
@require_user()
@apply_rate_limit()
@handle_api_errors("delete_stock_opname_hasil")
def delete_stock_opname_hasil(noso: str):
    payload = request.get_json(silent=True) or {}
    label = RequestValidator.normalize_label(payload.get("nomorLabel"))
    if not label:
        raise MissingFieldError("nomorLabel wajib diisi")

    result = hasil_service.delete_hasil(noso, label)
    if not result["success"]:
        return jsonify(result), 404
    logger.info(f"Hasil {noso}/{label} supprimé par {current_username()}")
    return jsonify(result)


# --- Scan des étiquettes ---

@app.route("/no-stock-opname/<noso>/validate-label", methods=["POST"])
@require_user()
@apply_rate_limit("scan")
@handle_api_errors("validate_label")
def validate_label(noso: str):
    payload = request.get_json(silent=True) or {}
    is_valid, errors = RequestValidator.validate_required(payload, ("label",))
    if not is_valid:
        return jsonify(APIErrorHandler.handle_validation_error(errors, "validate_label")), 400

    result = label_validator.validate(
        noso,
        RequestValidator.normalize_label(payload.get("label")),
        current_username(),
        blok_hint=RequestValidator.normalize_blok(payload.get("blok")),
        idlokasi_hint=RequestValidator.parse_idlokasi(payload.get("idlokasi")),
    )
    return jsonify(result.to_dict())


@app.route("/no-stock-opname/<noso>/insert-label", methods=["POST"])
@require_user()
@apply_rate_limit("scan")
@handle_api_errors("insert_label")
def insert_label(noso: str):
    payload = request.get_json(silent=True) or {}
    is_valid, errors = RequestValidator.validate_required(payload, RequestValidator.SCAN_REQUIRED_FIELDS)
    if not is_valid:
        return jsonify(APIErrorHandler.handle_validation_error(errors, "insert_label")), 400

    result = scan_recorder.record_scan(
        noso,
        RequestValidator.normalize_label(payload.get("label")),
        jmlh_sak=RequestValidator.parse_int(payload.get("jmlhSak"), "jmlhSak") or 0,
        berat=RequestValidator.parse_number(payload.get("berat"), "berat"),
        idlokasi=RequestValidator.parse_idlokasi(payload.get("idlokasi")),
        username=current_username(),
        actor_id=current_user_id(),
        blok=RequestValidator.normalize_blok(payload.get("blok")),
        id_discrepancy=RequestValidator.parse_int(payload.get("idDiscrepancy"), "idDiscrepancy"),
    )
    return jsonify(result)


# --- Ascend ---

@app.route("/no-stock-opname/<noso>/families", methods=["GET"])
@require_user()
@apply_rate_limit()
@handle_api_errors("ascend_families")
def ascend_families(noso: str):
    families = ascend_service.list_families(noso)
    return jsonify({"success": True, "message": "OK", "data": families})


@app.route("/no-stock-opname/<noso>/families/<int:family_id>/ascend", methods=["GET"])
@require_user()
@apply_rate_limit()
@handle_api_errors("ascend_family_items")
def ascend_family_items(noso: str, family_id: int):
    items = ascend_service.list_family_items(noso, family_id, request.args.get("keyword"))
    return jsonify({"success": True, "message": "OK", "data": items})


@app.route("/no-stock-opname/<noso>/ascend/hasil", methods=["POST"])
@require_user()
@apply_rate_limit()
@handle_api_errors("ascend_save_hasil")
def ascend_save_hasil(noso: str):
    payload = request.get_json(silent=True)
    items = payload.get("items") if isinstance(payload, dict) else payload
    if items is None:
        raise MissingFieldError("items wajib diisi")

    result = ascend_service.save_ascend_result(noso, items, current_username())
    return jsonify(result)


@app.route("/no-stock-opname/<int:item_id>/usage", methods=["GET"])
@require_user()
@apply_rate_limit()
@handle_api_errors("ascend_usage")
def ascend_usage(item_id: int):
    tgl_so = request.args.get("tglSO")
    if not tgl_so:
        raise MissingFieldError("tglSO wajib diisi")
    since = datetime.strptime(tgl_so.strip()[:10], "%Y-%m-%d").date()

    usage = ascend_service.fetch_usage_since(item_id, since)
    return jsonify({"success": True, "message": "OK", "data": usage})


@app.route("/no-stock-opname/<noso>/ascend/hasil/<int:item_id>", methods=["DELETE"])
@require_user()
@apply_rate_limit()
@handle_api_errors("ascend_delete_hasil")
def ascend_delete_hasil(noso: str, item_id: int):
    result = ascend_service.delete_ascend_result(noso, item_id)
    if not result["success"]:
        return jsonify(result), 404
    return jsonify(result)


# --- Supervision ---

@app.route("/api/events", methods=["GET"])
@require_user()
def event_stream():
    """Flux server-sent events des comptages (label_inserted)"""
    subscriber_id, subscriber_queue = notification_manager.subscribe()
    logger.info(f"Flux d'événements ouvert pour {g.username}")
    return Response(
        stream_with_context(notification_manager.stream(subscriber_id, subscriber_queue)),
        mimetype="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@app.route("/api/health", methods=["GET"])
def health_check():
    """Endpoint de santé"""
    try:
        db_healthy = db_manager.health_check()
        status = "healthy" if db_healthy else "degraded"

        return jsonify(
            {
                "status": status,
                "timestamp": datetime.now().isoformat(),
                "database": "healthy" if db_healthy else "error",
                "notifications": notification_manager.get_stats(),
            }
        ), (200 if db_healthy else 503)
    except Exception as e:
        logger.error(f"Health check error: {e}")
        return (
            jsonify(
                {
                    "status": "error",
                    "timestamp": datetime.now().isoformat(),
                    "error": str(e),
                }
            ),
            500,
        )


if __name__ == "__main__":
    logger.info("Démarrage du service Stock Opname")
    app.run(host="0.0.0.0", port=5000, debug=True, threaded=True)
