"""Client ID Metadata Document 支持（draft-ietf-oauth-client-id-metadata-document）。"""

from urllib.parse import urlparse

import httpx
from pydantic import ValidationError

from mcp_oauth.shared._httpx_utils import http_client_scope, send_request
from mcp_oauth.shared.auth import ClientIdMetadataDocument, OAuthMetadata
from mcp_oauth.shared.exceptions import ClientMetadataError


def is_client_id_metadata_url(client_id: str) -> bool:
    """判断 client_id 是否为可用作元数据文档地址的 HTTPS URL（必须带非根路径）。"""
    try:
        parsed = urlparse(client_id)
    except ValueError:
        return False

    if parsed.scheme != "https" or not parsed.netloc:
        return False

    return parsed.path not in ("", "/")


def supports_client_id_metadata(metadata: OAuthMetadata) -> bool:
    """授权服务器是否声明支持 Client ID Metadata Document。"""
    return metadata.client_id_metadata_document_supported is True


async def fetch_client_id_metadata(
    client_id_url: str,
    *,
    client: httpx.AsyncClient | None = None,
    timeout: float | None = None,
) -> ClientIdMetadataDocument:
    """获取并校验 client_id 指向的元数据文档。

    文档中的 client_id 必须与其所在 URL 完全一致。
    """
    if not is_client_id_metadata_url(client_id_url):
        raise ClientMetadataError(
            f"Invalid client_id for metadata document: {client_id_url!r} must be an HTTPS URL with a path component"
        )

    async with http_client_scope(client, timeout) as http:
        request = httpx.Request("GET", client_id_url, headers={"Accept": "application/json"})
        response = await send_request(http, request)

    if not response.is_success:
        raise ClientMetadataError(
            f"Failed to fetch Client ID Metadata: {response.status_code} {response.reason_phrase}"
        )

    try:
        document = ClientIdMetadataDocument.model_validate_json(response.content)
    except ValidationError as e:
        raise ClientMetadataError(f"Invalid Client ID Metadata Document: {e}") from e

    if document.client_id != client_id_url:
        raise ClientMetadataError(
            f"Client ID mismatch: document client_id ({document.client_id}) does not match URL ({client_id_url})"
        )

    return document
