# Overview: Flask API routes for user tables, columns, rows, imports and validation; parses input and returns JSON responses.

from flask import Blueprint, Response, current_app, g, jsonify, request

from ..decorators import optional_user, require_user
from ..errors import AppError, ValidationError
from ..providers import import_pipeline, table_service, type_registry, validation_summary_service
from ..responses import error_response, internal_error
from ..services.file_service import export_rows, parse_upload
from ..services.import_service import ImportRequest

tables_bp = Blueprint("tables", __name__, url_prefix="/api/tables")


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


# ----------------------------------------------------------------------
# Tables
# ----------------------------------------------------------------------


@tables_bp.get("")
@require_user
def list_tables_route():
    try:
        tables = table_service().list_tables(g.user, table_type=request.args.get("table_type"))
        return jsonify({"tables": [t.to_dict() for t in tables]}), 200
    except AppError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to list tables")


@tables_bp.post("")
@require_user
def create_table_route():
    try:
        table = table_service().create_table(_json_body(), g.user)
        return jsonify({"table": table.to_dict(include_columns=True)}), 201
    except AppError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to create table")


@tables_bp.get("/<int:table_id>")
@optional_user
def get_table_route(table_id: int):
    try:
        table = table_service().get_readable_table(table_id, g.user)
        return jsonify({"table": table.to_dict(include_columns=True)}), 200
    except AppError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to load table")


@tables_bp.patch("/<int:table_id>")
@require_user
def update_table_route(table_id: int):
    try:
        table = table_service().update_table(table_id, _json_body(), g.user)
        return jsonify({"table": table.to_dict(include_columns=True)}), 200
    except AppError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to update table")


@tables_bp.delete("/<int:table_id>")
@require_user
def delete_table_route(table_id: int):
    try:
        table_service().delete_table(table_id, g.user)
        return jsonify({"message": "Table deleted"}), 200
    except AppError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to delete table")


# ----------------------------------------------------------------------
# Columns
# ----------------------------------------------------------------------


@tables_bp.post("/<int:table_id>/columns")
@require_user
def add_column_route(table_id: int):
    try:
        column = table_service().add_column(table_id, _json_body(), g.user)
        return jsonify({"column": column.to_dict()}), 201
    except AppError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to add column")


@tables_bp.patch("/<int:table_id>/columns/<int:column_id>")
@require_user
def update_column_route(table_id: int, column_id: int):
    try:
        column = table_service().update_column(table_id, column_id, _json_body(), g.user)
        return jsonify({"column": column.to_dict()}), 200
    except AppError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to update column")


@tables_bp.delete("/<int:table_id>/columns/<int:column_id>")
@require_user
def delete_column_route(table_id: int, column_id: int):
    try:
        table_service().delete_column(table_id, column_id, g.user)
        return jsonify({"message": "Column deleted"}), 200
    except AppError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to delete column")


@tables_bp.post("/<int:table_id>/columns/<int:column_id>/preview-type")
@optional_user
def preview_type_change_route(table_id: int, column_id: int):
    try:
        body = _json_body()
        new_type = str(body.get("type") or body.get("newType") or "").strip()
        if not new_type:
            return jsonify({"error": "Validation failed", "message": "type is required"}), 400
        preview = validation_summary_service().preview_type_change(table_id, column_id, new_type, g.user)
        return jsonify(preview), 200
    except AppError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to preview type change")


@tables_bp.get("/<int:table_id>/columns/<int:column_id>/values")
@optional_user
def column_values_route(table_id: int, column_id: int):
    try:
        values = table_service().column_values(table_id, column_id, g.user)
        return jsonify({"values": values}), 200
    except AppError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to load column values")


# ----------------------------------------------------------------------
# Rows
# ----------------------------------------------------------------------


@tables_bp.get("/<int:table_id>/rows")
@optional_user
def list_rows_route(table_id: int):
    try:
        page = request.args.get("page", default=1, type=int)
        limit = request.args.get("limit", default=100, type=int)
        return jsonify(table_service().list_rows(table_id, g.user, page=page, limit=limit)), 200
    except AppError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to list rows")


@tables_bp.post("/<int:table_id>/rows")
@require_user
def create_row_route(table_id: int):
    try:
        body = _json_body()
        row = table_service().create_row(table_id, body.get("data", {}), g.user)
        return jsonify({"row": row.to_dict()}), 201
    except AppError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to create row")


@tables_bp.patch("/<int:table_id>/rows/<int:row_id>")
@require_user
def update_row_route(table_id: int, row_id: int):
    try:
        body = _json_body()
        row = table_service().update_row(table_id, row_id, body.get("data", {}), g.user)
        return jsonify({"row": row.to_dict()}), 200
    except AppError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to update row")


@tables_bp.delete("/<int:table_id>/rows/<int:row_id>")
@require_user
def delete_row_route(table_id: int, row_id: int):
    try:
        table_service().delete_row(table_id, row_id, g.user)
        return jsonify({"message": "Row deleted"}), 200
    except AppError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to delete row")


@tables_bp.post("/<int:table_id>/rows/mass-delete")
@require_user
def mass_delete_rows_route(table_id: int):
    try:
        body = _json_body()
        row_ids = body.get("row_ids", body.get("rowIds"))
        deleted = table_service().mass_delete_rows(table_id, row_ids, g.user)
        return jsonify({"deletedCount": deleted, "message": f"Deleted {deleted} rows"}), 200
    except AppError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to delete rows")


@tables_bp.get("/<int:table_id>/export")
@optional_user
def export_rows_route(table_id: int):
    try:
        fmt = (request.args.get("format") or "csv").lower()
        service = table_service()
        table = service.get_readable_table(table_id, g.user)
        content, mimetype = export_rows(table.columns, service.all_rows(table), fmt)
        filename = f"table_{table.id}.{fmt}"
        return Response(
            content,
            mimetype=mimetype,
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )
    except AppError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to export rows")


# ----------------------------------------------------------------------
# Import
# ----------------------------------------------------------------------


@tables_bp.post("/<int:table_id>/data/parse-import-file")
@require_user
def parse_import_file_route(table_id: int):
    if "file" not in request.files:
        return jsonify({"error": "Validation failed", "message": "file is required"}), 400
    try:
        table_service().get_owned_table(table_id, g.user, "import data")
        upload = request.files["file"]
        parsed = parse_upload(upload.filename or "", upload.stream)
        return jsonify(parsed), 200
    except AppError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to parse import file")


@tables_bp.post("/<int:table_id>/data/import")
@require_user
def import_data_route(table_id: int):
    try:
        import_request = ImportRequest.from_payload(request.get_json(silent=True))
        result = import_pipeline().run(table_id, import_request, g.user)
        return jsonify(result.to_dict()), 200
    except AppError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to import data")


# ----------------------------------------------------------------------
# Validation
# ----------------------------------------------------------------------


@tables_bp.get("/<int:table_id>/validate")
@optional_user
def validate_table_route(table_id: int):
    try:
        page = request.args.get("page", default=1, type=int)
        limit = request.args.get("limit", default=current_app.config["VALIDATION_PAGE_LIMIT"], type=int)
        table, result = validation_summary_service().validate_table(table_id, g.user, page=page, limit=limit)
        payload = result.to_dict()
        payload["tableId"] = table.id
        payload["message"] = result.message
        return jsonify(payload), 200
    except AppError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to validate table")


@tables_bp.get("/<int:table_id>/validate/rules")
@optional_user
def validation_rules_route(table_id: int):
    try:
        table = table_service().get_readable_table(table_id, g.user)
        registry = type_registry()
        columns = []
        for column in table.columns:
            contract = registry.resolve(column.type)
            columns.append({
                "columnName": column.name,
                "columnType": column.type,
                "isRequired": column.is_required,
                "allowDuplicates": column.allow_duplicates,
                "defaultValue": column.default_value,
                "knownType": registry.is_known(column.type),
                "description": contract.description,
                "example": contract.example,
            })
        return jsonify({"tableId": table.id, "columns": columns, "types": registry.describe()}), 200
    except AppError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to load validation rules")


@tables_bp.delete("/<int:table_id>/invalid-rows")
@require_user
def delete_invalid_rows_route(table_id: int):
    try:
        return jsonify(validation_summary_service().delete_invalid_rows(table_id, g.user)), 200
    except AppError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to delete invalid rows")
