import logging
import os
from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, Body, Depends, File, Request, UploadFile
from fastapi.responses import RedirectResponse, StreamingResponse
from starlette.concurrency import run_in_threadpool

from gateway.auth import require_api_key
from gateway.coordination import CoordinationStore
from gateway.directory import LocationDirectory
from gateway.errors import MissingUpload, ObjectNotFound
from gateway.models import CreateBucketRequest, NodeDescriptor, NodeRegisterRequest
from gateway.registry import NodeRegistry
from gateway.resolver import Outcome, RedirectResolver, Resolution
from gateway.storage import COPY_CHUNK_SIZE, LocalObjectStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", dependencies=[Depends(require_api_key)])
public_router = APIRouter()


# --- Dependencies ---

def get_objects(request: Request) -> LocalObjectStore:
    return request.app.state.objects


def get_directory(request: Request) -> LocationDirectory:
    return request.app.state.directory


def get_registry(request: Request) -> NodeRegistry:
    return request.app.state.registry


def get_resolver(request: Request) -> RedirectResolver:
    return request.app.state.resolver


def get_self_node(request: Request) -> NodeDescriptor:
    return request.app.state.self_node


def _miss(resolution: Resolution):
    if resolution.outcome is Outcome.REDIRECTED:
        return RedirectResponse(url=resolution.url)
    raise ObjectNotFound(resolution.bucket, resolution.key)


# --- Buckets ---

@router.get("/buckets")
async def list_buckets(objects: LocalObjectStore = Depends(get_objects)):
    buckets = await run_in_threadpool(objects.list_buckets)
    return {"buckets": [b.model_dump(mode="json", by_alias=True) for b in buckets]}


@router.post("/buckets")
async def create_bucket(body: CreateBucketRequest, objects: LocalObjectStore = Depends(get_objects)):
    bucket = await run_in_threadpool(objects.create_bucket, body.name)
    return {"success": True, "bucket": {"name": bucket.name}}


@router.delete("/buckets/{bucket}")
async def delete_bucket(
    bucket: str,
    objects: LocalObjectStore = Depends(get_objects),
    directory: LocationDirectory = Depends(get_directory),
):
    files = await run_in_threadpool(objects.list_objects, bucket)
    await run_in_threadpool(objects.delete_bucket, bucket)

    for f in files:
        result = await directory.forget(bucket, f.name)
        if not result.ok:
            logger.warning("Dangling location pointer for %s/%s: %s", bucket, f.name, result.error)

    return {"success": True, "message": "bucket deleted"}


# --- Objects ---

@router.get("/buckets/{bucket}/files")
async def list_files(bucket: str, objects: LocalObjectStore = Depends(get_objects)):
    files = await run_in_threadpool(objects.list_objects, bucket)
    return {"files": [f.model_dump(mode="json") for f in files], "bucket": bucket}


@router.post("/buckets/{bucket}/upload")
async def upload_file(
    bucket: str,
    file: Optional[UploadFile] = File(None),
    objects: LocalObjectStore = Depends(get_objects),
    directory: LocationDirectory = Depends(get_directory),
    self_node: NodeDescriptor = Depends(get_self_node),
):
    if file is None:
        raise MissingUpload()

    stored = await run_in_threadpool(objects.put_object, bucket, file.file, file.filename or "")

    # Only published once the bytes are fully on disk. A failure here must
    # not fail the upload.
    result = await directory.record(bucket, stored.name, self_node)
    if not result.ok:
        logger.warning("Location of %s/%s not recorded: %s", bucket, stored.name, result.error)

    return {"success": True, "file": stored.model_dump(by_alias=True)}


def _content_disposition(filename: str) -> str:
    quoted = quote(filename)
    if quoted != filename:
        return f"attachment; filename*=utf-8''{quoted}"
    return f'attachment; filename="{filename}"'


@router.get("/buckets/{bucket}/files/{filename}")
async def download_file(bucket: str, filename: str, resolver: RedirectResolver = Depends(get_resolver)):
    resolution = await resolver.resolve(bucket, filename)
    if resolution.outcome is not Outcome.LOCAL_HIT:
        return _miss(resolution)

    file_stream = resolution.local
    size = os.fstat(file_stream.fileno()).st_size

    # Streams from the handle opened during resolution, so a delete that
    # lands after this point does not cut the download short.
    def iterfile():
        with file_stream:
            yield from iter(lambda: file_stream.read(COPY_CHUNK_SIZE), b"")

    headers = {
        "Content-Disposition": _content_disposition(filename),
        "Content-Length": str(size),
    }
    return StreamingResponse(iterfile(), media_type="application/octet-stream", headers=headers)


@router.delete("/buckets/{bucket}/files/{filename}")
async def delete_file(
    bucket: str,
    filename: str,
    objects: LocalObjectStore = Depends(get_objects),
    directory: LocationDirectory = Depends(get_directory),
):
    await run_in_threadpool(objects.delete_object, bucket, filename)

    result = await directory.forget(bucket, filename)
    if not result.ok:
        logger.warning("Dangling location pointer for %s/%s: %s", bucket, filename, result.error)

    return {"message": "file deleted"}


@router.get("/buckets/{bucket}/files/{filename}/info")
async def file_info(
    bucket: str,
    filename: str,
    resolver: RedirectResolver = Depends(get_resolver),
    directory: LocationDirectory = Depends(get_directory),
):
    resolution = await resolver.resolve_info(bucket, filename)
    if resolution.outcome is not Outcome.LOCAL_HIT:
        return _miss(resolution)

    info = resolution.local
    body = {
        "filename": filename,
        "size": info.size,
        "createdAt": info.created.isoformat(),
        "modifiedAt": info.modified.isoformat(),
        "bucket": bucket,
    }
    location = await directory.lookup(bucket, filename)
    if location is not None:
        body["location"] = location.model_dump()
    return body


# --- Nodes ---

@router.post("/nodes/register")
async def register_node(
    payload: Optional[NodeRegisterRequest] = Body(None),
    registry: NodeRegistry = Depends(get_registry),
    self_node: NodeDescriptor = Depends(get_self_node),
):
    payload = payload or NodeRegisterRequest()
    node = NodeDescriptor(
        id=payload.id or self_node.id,
        host=payload.host or self_node.host,
        port=payload.port if payload.port is not None else self_node.port,
    )
    result = await registry.register(node)
    if not result.ok:
        logger.warning("Node %s not registered: %s", node.id, result.error)
    return {"success": True, "node": node.model_dump()}


@router.get("/nodes")
async def list_nodes(registry: NodeRegistry = Depends(get_registry)):
    nodes = await registry.list()
    return {"nodes": [n.model_dump() for n in nodes]}


# --- Unauthenticated ---

@public_router.get("/health")
async def health():
    return {"status": "ok"}


@public_router.get("/structure")
async def structure(request: Request):
    """This node, the nodes it knows about and whether the shared store answers."""
    coordination: CoordinationStore = request.app.state.coordination
    registry: NodeRegistry = request.app.state.registry
    return {
        "server": request.app.state.self_node.model_dump(),
        "nodes": [n.model_dump() for n in await registry.list()],
        "redis": {"connected": await coordination.ping()},
    }
