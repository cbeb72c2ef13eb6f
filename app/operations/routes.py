"""
Operation subsystem routes: start, stop, delete, query and stream oc-mirror runs.
"""
import logging

from flask import Blueprint, Response, jsonify, request, stream_with_context

from mirror_service.errors import NotFound, ValidationError

from .log_tailer import LogTailer
from .models import sse_event
from .services import OperationSupervisor

logger = logging.getLogger(__name__)


def create_operation_routes(supervisor: OperationSupervisor, log_tailer: LogTailer) -> Blueprint:
    """Create operation routes."""
    bp = Blueprint('operations', __name__)

    @bp.post("/api/operations/start")
    def start_operation():
        payload = request.get_json(silent=True)
        if not isinstance(payload, dict):
            raise ValidationError("Request body must be a JSON object")
        config_file = payload.get("configFile")
        if not isinstance(config_file, str):
            raise ValidationError("configFile is required")

        operation = supervisor.start(config_file, name=payload.get("name"))
        return jsonify({
            "message": "Operation started successfully",
            "operationId": operation.id,
            "operation": operation.to_dict()
        }), 202

    @bp.post("/api/operations/<operation_id>/stop")
    def stop_operation(operation_id):
        operation = supervisor.stop(operation_id)
        return jsonify({
            "message": "Operation stopped successfully",
            "operation": operation.to_dict()
        })

    @bp.delete("/api/operations/<operation_id>")
    def delete_operation(operation_id):
        supervisor.delete(operation_id)
        return jsonify({"message": "Operation deleted successfully"})

    @bp.get("/api/operations")
    def list_operations():
        operations = supervisor.list(request.args.get("status"))
        return jsonify([op.to_dict() for op in operations])

    @bp.get("/api/operations/history")
    def operation_history():
        return jsonify([op.to_dict() for op in supervisor.list()])

    @bp.get("/api/operations/recent")
    def recent_operations():
        return jsonify([op.to_dict() for op in supervisor.recent()])

    @bp.get("/api/operations/<operation_id>")
    def get_operation(operation_id):
        return jsonify(supervisor.get(operation_id).to_dict())

    @bp.get("/api/operations/<operation_id>/details")
    def operation_details(operation_id):
        return jsonify(supervisor.details(operation_id).to_dict())

    @bp.get("/api/operations/<operation_id>/logs")
    def operation_logs(operation_id):
        supervisor.get(operation_id)
        return jsonify({"logs": log_tailer.fetch_full(operation_id)})

    @bp.get("/api/operations/<operation_id>/logstream")
    def stream_operation_logs(operation_id):
        """Stream log output as server-sent events until the operation ends."""
        subscription = log_tailer.open_stream(operation_id)

        def generate():
            try:
                for chunk in subscription:
                    yield chunk.to_sse()
                try:
                    operation = supervisor.get(operation_id)
                    yield sse_event("complete", {
                        "status": operation.status.value,
                        "error_message": operation.error_message
                    })
                except NotFound:
                    yield sse_event("complete", {"status": "deleted"})
            finally:
                subscription.close()

        return Response(
            stream_with_context(generate()),
            mimetype='text/event-stream',
            headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"}
        )

    @bp.get("/api/stats")
    def operation_stats():
        return jsonify(supervisor.stats().to_dict())

    return bp
