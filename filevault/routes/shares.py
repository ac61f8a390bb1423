"""Public share token and user-to-user share routes"""
from flask import Blueprint, jsonify, request
from pydantic import ValidationError as PydanticValidationError
from filevault.errors import ValidationError
from filevault.models.api_schemas import (
    CreateShareRequest, UpdateShareRequest, ShareInfo, ListSharesResponse, ShareStatsResponse,
    ShareWithUserRequest, DirectShareInfo, ListDirectSharesResponse
)
from .files import stream_response

shares_bp = Blueprint('shares_api', __name__)


def _parse(schema):
    """Validate the JSON body against ``schema``"""
    data = request.get_json(silent=True)
    if data is None:
        data = {}
    try:
        return schema(**data)
    except PydanticValidationError as e:
        raise ValidationError(f'Invalid request: {e}')


@shares_bp.route('/api/files/<file_id>/shares', methods=['POST'])
def create_share(file_id):
    """
    Issue a share token for a file.

    Expected JSON body: CreateShareRequest schema

    Returns: ShareInfo (201)
    """
    from filevault.app import current_user_id, get_vault

    body = _parse(CreateShareRequest)
    vault = get_vault()
    share = vault.issue_public_share(
        current_user_id(), file_id,
        expires_at=body.expires_at,
        max_downloads=body.max_downloads,
        target_user_id=body.target_user_id,
    )
    info = ShareInfo.from_record(share, vault.shares.share_url(share))
    return jsonify(info.model_dump()), 201


@shares_bp.route('/api/shares', methods=['GET'])
def list_shares():
    from filevault.app import current_user_id, get_vault

    vault = get_vault()
    shares = vault.list_shares(current_user_id())
    response = ListSharesResponse(
        shares=[ShareInfo.from_record(s, vault.shares.share_url(s)) for s in shares]
    )
    return jsonify(response.model_dump()), 200


@shares_bp.route('/api/shares/<share_id>', methods=['PATCH'])
def update_share(share_id):
    """Change a share's limits, or revoke it with {"is_active": false}."""
    from filevault.app import current_user_id, get_vault

    body = _parse(UpdateShareRequest)
    vault = get_vault()
    share = vault.update_share(
        current_user_id(), share_id,
        is_active=body.is_active,
        expires_at=body.expires_at,
        max_downloads=body.max_downloads,
    )
    return jsonify(ShareInfo.from_record(share, vault.shares.share_url(share)).model_dump()), 200


@shares_bp.route('/api/shares/<share_id>', methods=['DELETE'])
def delete_share(share_id):
    from filevault.app import current_user_id, get_vault

    get_vault().delete_share(current_user_id(), share_id)
    return '', 204


@shares_bp.route('/api/shares/<share_id>/stats', methods=['GET'])
def share_stats(share_id):
    from filevault.app import current_user_id, get_vault

    stats = get_vault().get_share_stats(current_user_id(), share_id)
    return jsonify(ShareStatsResponse(**stats).model_dump()), 200


@shares_bp.route('/api/share/<token>', methods=['GET'])
def redeem_share(token):
    """
    Download through a share token. No vault account needed, except for
    tokens issued to a specific user.
    """
    from filevault.app import current_user_id, get_vault

    ip_address = request.headers.get('X-Forwarded-For', request.remote_addr)
    if ip_address:
        ip_address = ip_address.split(',')[0].strip()

    record, stream = get_vault().redeem_public_share(
        token,
        ip_address=ip_address,
        user_agent=request.headers.get('User-Agent'),
        accessor_user_id=current_user_id(required=False),
    )
    return stream_response(record, stream)


@shares_bp.route('/api/files/<file_id>/direct-shares', methods=['POST'])
def share_with_user(file_id):
    """
    Share a file with another user.

    Expected JSON body: ShareWithUserRequest schema

    Returns: DirectShareInfo (201), 409 if already shared with that user
    """
    from filevault.app import current_user_id, get_vault

    body = _parse(ShareWithUserRequest)
    share = get_vault().share_with_user(current_user_id(), file_id, body.to_user_id, body.message)
    return jsonify(DirectShareInfo.from_record(share).model_dump()), 201


@shares_bp.route('/api/direct-shares/incoming', methods=['GET'])
def incoming_shares():
    from filevault.app import current_user_id, get_vault

    shares = get_vault().list_incoming_shares(current_user_id())
    response = ListDirectSharesResponse(shares=[DirectShareInfo.from_record(s) for s in shares])
    return jsonify(response.model_dump()), 200


@shares_bp.route('/api/direct-shares/outgoing', methods=['GET'])
def outgoing_shares():
    from filevault.app import current_user_id, get_vault

    shares = get_vault().list_outgoing_shares(current_user_id())
    response = ListDirectSharesResponse(shares=[DirectShareInfo.from_record(s) for s in shares])
    return jsonify(response.model_dump()), 200


@shares_bp.route('/api/direct-shares/<share_id>/read', methods=['POST'])
def mark_read(share_id):
    from filevault.app import current_user_id, get_vault

    share = get_vault().mark_share_read(current_user_id(), share_id)
    return jsonify(DirectShareInfo.from_record(share).model_dump()), 200


@shares_bp.route('/api/direct-shares/<share_id>', methods=['DELETE'])
def delete_direct_share(share_id):
    from filevault.app import current_user_id, get_vault

    get_vault().delete_direct_share(current_user_id(), share_id)
    return '', 204
