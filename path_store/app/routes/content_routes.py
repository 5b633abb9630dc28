from fastapi import APIRouter, Request, Response, status
from fastapi.responses import StreamingResponse

from path_store import config
from path_store.app.errors import BadRequestError
from path_store.app.services.blob_transfer import BlobTransfer
from path_store.logger_config import setup_logger

logger = setup_logger()

router = APIRouter()


def canonical_path(path: str) -> str:
    """Strip the leading slash; the root maps to the default document."""
    path = path.lstrip("/")
    return path or config.DEFAULT_DOCUMENT


def check_content_length(request: Request) -> int:
    """Check if Content-Length header is present and positive."""
    content_length = request.headers.get("content-length")
    if content_length is None:
        raise BadRequestError("Missing Content-Length header")

    try:
        content_length_value = int(content_length)
    except ValueError:
        raise BadRequestError("Invalid Content-Length header")

    if content_length_value < 1:
        raise BadRequestError("Content-Length must be positive")
    if content_length_value > config.MAX_CONTENT_LENGTH:
        raise BadRequestError(f"Content-Length exceeds maximum of {config.MAX_CONTENT_LENGTH} bytes")
    return content_length_value


def get_transfer(request: Request) -> BlobTransfer:
    return request.app.state.blob_transfer


# Reserved for every method so it can never be shadowed by a stored entry
@router.api_route("/healthz", methods=["GET", "HEAD", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"])
async def healthz():
    logger.debug("healthz requested")
    return Response(status_code=status.HTTP_200_OK)


@router.get("/{path:path}")
async def get_content(path: str, request: Request):
    path = canonical_path(path)
    download = await get_transfer(request).download(path)
    return StreamingResponse(download.stream(), headers=download.headers)


@router.post("/{path:path}")
async def create_content(path: str, request: Request):
    path = canonical_path(path)
    length = check_content_length(request)
    content_type = request.headers.get("content-type", config.DEFAULT_CONTENT_TYPE)
    await get_transfer(request).upload(path, content_type, length, request.stream())
    logger.info(f"Created {path} ({length} bytes, {content_type})")
    return Response(status_code=status.HTTP_201_CREATED)


@router.put("/{path:path}")
async def replace_content(path: str, request: Request):
    path = canonical_path(path)
    length = check_content_length(request)
    content_type = request.headers.get("content-type", config.DEFAULT_CONTENT_TYPE)
    await get_transfer(request).upload(path, content_type, length, request.stream(), replace=True)
    logger.info(f"Replaced {path} ({length} bytes, {content_type})")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete("/{path:path}")
async def delete_content(path: str, request: Request):
    path = canonical_path(path)
    await get_transfer(request).remove(path)
    logger.info(f"Deleted {path}")
    return Response(status_code=status.HTTP_204_NO_CONTENT)
