"""File upload, listing, download and quota routes"""
from flask import Blueprint, Response, jsonify, request, send_file
from filevault.errors import ValidationError
from filevault.models.api_schemas import FileInfo, FileStatsResponse, ListFilesResponse, QuotaResponse

files_bp = Blueprint('files_api', __name__)


def _int_arg(name: str, default: int) -> int:
    try:
        return int(request.args.get(name, default))
    except ValueError:
        raise ValidationError(f'{name} must be an integer')


def _declared_size(upload) -> int:
    """Size the client declared in the form, or the size of the received part."""
    declared = request.form.get('size')
    if declared is not None:
        try:
            return int(declared)
        except ValueError:
            raise ValidationError('size must be an integer')
    stream = upload.stream
    stream.seek(0, 2)
    size = stream.tell()
    stream.seek(0)
    return size


def stream_response(file, stream) -> Response:
    """Stream ``stream`` back as an attachment named after ``file``."""
    response = send_file(
        stream,
        mimetype=file.mime_type,
        as_attachment=True,
        download_name=file.display_name,
    )
    response.content_length = file.size
    return response


@files_bp.route('/api/files', methods=['POST'])
def upload_file():
    """
    Upload a file.

    Expected multipart form data:
        file: The file content (binary)
        size: Declared size in bytes (optional, defaults to the received size)
        folder_id: Opaque folder reference (optional)

    Returns: FileInfo (201)
    """
    from filevault.app import current_user_id, get_vault

    user_id = current_user_id()
    if 'file' not in request.files:
        raise ValidationError('file required in request')

    upload = request.files['file']
    vault = get_vault()
    record = vault.upload_file(
        user_id,
        upload.stream,
        upload.filename,
        _declared_size(upload),
        declared_mime=upload.mimetype,
        folder_id=request.form.get('folder_id'),
    )
    info = FileInfo.from_record(record, vault.has_other_owners(record))
    return jsonify(info.model_dump()), 201


@files_bp.route('/api/files', methods=['GET'])
def list_files():
    """
    List the caller's files, newest first.

    Query parameters:
        limit: Maximum number of files (default: 50)
        offset: Number of files to skip (default: 0)
        search: Substring of the file name
    """
    from filevault.app import current_user_id, get_vault

    user_id = current_user_id()
    vault = get_vault()
    files = vault.list_files(
        user_id,
        limit=_int_arg('limit', 50),
        offset=_int_arg('offset', 0),
        search=request.args.get('search'),
    )
    response = ListFilesResponse(
        files=[FileInfo.from_record(f, vault.has_other_owners(f)) for f in files]
    )
    return jsonify(response.model_dump()), 200


@files_bp.route('/api/files/stats', methods=['GET'])
def file_stats():
    from filevault.app import current_user_id, get_vault

    stats = get_vault().get_file_stats(current_user_id())
    return jsonify(FileStatsResponse(**stats.to_dict()).model_dump()), 200


@files_bp.route('/api/files/<file_id>', methods=['GET'])
def get_file(file_id):
    from filevault.app import current_user_id, get_vault

    vault = get_vault()
    record = vault.get_file(current_user_id(), file_id)
    return jsonify(FileInfo.from_record(record, vault.has_other_owners(record)).model_dump()), 200


@files_bp.route('/api/files/<file_id>/download', methods=['GET'])
def download_file(file_id):
    """Download a file the caller owns or was directly shared."""
    from filevault.app import current_user_id, get_vault

    record, stream = get_vault().download_file(current_user_id(), file_id)
    return stream_response(record, stream)


@files_bp.route('/api/files/<file_id>', methods=['DELETE'])
def delete_file(file_id):
    from filevault.app import current_user_id, get_vault

    get_vault().delete_file(current_user_id(), file_id)
    return '', 204


@files_bp.route('/api/quota', methods=['GET'])
def quota():
    """Return the caller's logical storage usage and limit."""
    from filevault.app import current_user_id, get_vault

    usage = get_vault().get_quota_usage(current_user_id())
    return jsonify(QuotaResponse(**usage.to_dict()).model_dump()), 200
