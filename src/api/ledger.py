"""
RevLedger - Distribution Ledger API Blueprint

REST endpoints over PaymentDistributor.

Provides access to:
- Ledger initialization and distributor totals
- Collection registration, activation and stats
- Single and batch distributions
- Distribution history and reconciliation

Mutating routes require an API key (X-API-Key) and carry the acting
identity in the "caller" body field; the ledger checks it against the
recorded authority. Ledger errors are rendered by the error handlers in
api.utils with their own HTTP status.
"""

from flask import Blueprint, jsonify, request

from ledger_records import MAX_COLLECTION_ID_LENGTH, MAX_PAYOUT_ENDPOINT_LENGTH

from .state import get_distributor
from .utils import (
    MAX_BATCH_SIZE,
    MAX_HOLDERS,
    bounded_limit,
    require_api_key,
    validate_json_schema,
)

ledger_bp = Blueprint("ledger", __name__)

BATCH_MODES = ("atomic", "best_effort")


def _json_body():
    return request.get_json(silent=True)


# =============================================================================
# Distributor
# =============================================================================


@ledger_bp.route("/ledger/initialize", methods=["POST"])
@require_api_key
def initialize_ledger():
    """
    Create the Distributor record.

    Request body:
        {"authority": "ops-wallet"}

    Returns:
        Distributor record (201), 409 if already initialized
    """
    data = _json_body()
    is_valid, error_msg = validate_json_schema(
        data,
        required_fields={"authority": str},
        max_lengths={"authority": MAX_COLLECTION_ID_LENGTH},
    )
    if not is_valid:
        return jsonify({"error": error_msg}), 400

    distributor = get_distributor().initialize(data["authority"])
    return jsonify(distributor.to_dict()), 201


@ledger_bp.route("/ledger/distributor", methods=["GET"])
def get_distributor_stats():
    """Distributor totals and the active fee configuration."""
    service = get_distributor()
    distributor = service.get_distributor_stats()
    return jsonify({
        "distributor": distributor.to_dict(),
        "config": service.config.to_dict(),
    })


# =============================================================================
# Collections
# =============================================================================


@ledger_bp.route("/ledger/collections", methods=["POST"])
@require_api_key
def register_collection():
    """
    Register a collection.

    Request body:
        {
            "caller": "ops-wallet",
            "collection_id": "genesis",
            "payout_endpoint": "https://example.com/x402/genesis",
            "revenue_model": "equal"          // equal, weighted, creator_split
        }
    """
    data = _json_body()
    is_valid, error_msg = validate_json_schema(
        data,
        required_fields={"caller": str, "collection_id": str, "payout_endpoint": str},
        optional_fields={"revenue_model": str},
        max_lengths={
            "collection_id": MAX_COLLECTION_ID_LENGTH,
            "payout_endpoint": MAX_PAYOUT_ENDPOINT_LENGTH,
        },
    )
    if not is_valid:
        return jsonify({"error": error_msg}), 400

    collection = get_distributor().register_collection(
        collection_id=data["collection_id"],
        payout_endpoint=data["payout_endpoint"],
        revenue_model=data.get("revenue_model") or "equal",
        caller=data["caller"],
    )
    return jsonify(collection.to_dict()), 201


@ledger_bp.route("/ledger/collections", methods=["GET"])
def list_collections():
    """
    List registered collections.

    Query params:
        active_only: "true" to hide disabled collections
    """
    active_only = request.args.get("active_only", "false").lower() == "true"
    collections = get_distributor().list_collections(active_only=active_only)
    return jsonify({
        "collections": [c.to_dict() for c in collections],
        "count": len(collections),
    })


@ledger_bp.route("/ledger/collections/<collection_id>/stats", methods=["GET"])
def get_collection_stats(collection_id):
    """Configuration and aggregates for one collection (no auth)."""
    return jsonify(get_distributor().get_stats(collection_id).to_dict())


@ledger_bp.route("/ledger/collections/<collection_id>/history", methods=["GET"])
def get_collection_history(collection_id):
    """
    Distribution events for a collection, newest first.

    Query params:
        limit: Maximum number of events (default from LEDGER_HISTORY_LIMIT)
    """
    limit = request.args.get("limit", type=int)
    events = get_distributor().get_distribution_history(collection_id, limit=bounded_limit(limit))
    return jsonify({
        "collection_id": collection_id,
        "distributions": [e.to_dict() for e in events],
        "count": len(events),
    })


@ledger_bp.route("/ledger/collections/<collection_id>/active", methods=["POST"])
@require_api_key
def set_collection_active(collection_id):
    """
    Enable or disable distributions for a collection.

    Request body:
        {"caller": "ops-wallet", "is_active": false}
    """
    data = _json_body()
    is_valid, error_msg = validate_json_schema(
        data,
        required_fields={"caller": str, "is_active": bool},
    )
    if not is_valid:
        return jsonify({"error": error_msg}), 400

    collection = get_distributor().set_collection_active(
        collection_id, data["is_active"], caller=data["caller"]
    )
    return jsonify(collection.to_dict())


# =============================================================================
# Distributions
# =============================================================================


@ledger_bp.route("/ledger/collections/<collection_id>/distribute", methods=["POST"])
@require_api_key
def distribute_payment(collection_id):
    """
    Distribute a payment across a collection's holders.

    Request body:
        {
            "caller": "ops-wallet",
            "gross_amount": 1000000,
            "holders": ["holder-a", "holder-b"],
            "weights": [3, 1],                // weighted model only
            "creator_account": "artist",      // creator_split model only
            "creator_share_bps": 1000         // creator_split model only
        }

    Returns:
        The DistributionEvent (201)
    """
    data = _json_body()
    is_valid, error_msg = validate_json_schema(
        data,
        required_fields={"caller": str, "gross_amount": int, "holders": list},
        optional_fields={"weights": list, "creator_account": str, "creator_share_bps": int},
        max_lengths={"holders": MAX_HOLDERS, "weights": MAX_HOLDERS},
    )
    if not is_valid:
        return jsonify({"error": error_msg}), 400

    event = get_distributor().distribute_payment(
        collection_id,
        data["gross_amount"],
        data["holders"],
        caller=data["caller"],
        weights=data.get("weights"),
        creator_account=data.get("creator_account"),
        creator_share_bps=data.get("creator_share_bps"),
    )
    return jsonify({"event": event.to_dict()}), 201


@ledger_bp.route("/ledger/batch", methods=["POST"])
@require_api_key
def distribute_batch():
    """
    Transfer caller-supplied amounts to holder accounts.

    Request body:
        {
            "caller": "ops-wallet",
            "amounts": [100, 250],
            "holder_accounts": ["holder-a", "holder-b"],
            "mode": "atomic"                  // atomic (default) or best_effort
        }
    """
    data = _json_body()
    is_valid, error_msg = validate_json_schema(
        data,
        required_fields={"caller": str, "amounts": list, "holder_accounts": list},
        optional_fields={"mode": str},
        max_lengths={"amounts": MAX_BATCH_SIZE, "holder_accounts": MAX_BATCH_SIZE},
    )
    if not is_valid:
        return jsonify({"error": error_msg}), 400

    mode = data.get("mode") or "atomic"
    if mode not in BATCH_MODES:
        return jsonify({"error": f"Invalid mode: {mode}", "valid_modes": list(BATCH_MODES)}), 400

    service = get_distributor()
    if mode == "atomic":
        result = service.distribute_batch(data["amounts"], data["holder_accounts"], caller=data["caller"])
    else:
        result = service.distribute_batch_best_effort(
            data["amounts"], data["holder_accounts"], caller=data["caller"]
        )
    return jsonify(result.to_dict())


# =============================================================================
# Audit
# =============================================================================


@ledger_bp.route("/ledger/reconcile", methods=["GET"])
def reconcile():
    """Replay the event log against stored aggregates."""
    return jsonify(get_distributor().reconcile().to_dict())
