"""
S3 / MinIO block store.
Maps the stage-and-commit protocol onto S3 multipart uploads: consecutive blocks
are packed into parts, the commit completes the upload, and an abort discards
every uploaded part.
"""

import asyncio
import functools
import logging
import math
from concurrent.futures import Future, ThreadPoolExecutor
from typing import AsyncIterator, Dict, Optional, Sequence, Set

import boto3
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError, HTTPClientError
from botocore.exceptions import ConnectionError as BotoConnectionError

from blob_transfer.core.blocks import Block, BlockReceipt
from blob_transfer.core.config import Settings
from blob_transfer.core.exceptions import (
    BlockListError,
    ObjectNotFoundError,
    PermanentStoreError,
    TransferError,
    TransientStoreError,
)
from blob_transfer.core.store import ObjectInfo, ObjectStream
from blob_transfer.s3.config import (
    NOT_FOUND_ERROR_CODES,
    S3_MAX_PART_SIZE,
    S3_MAX_PARTS,
    S3_MIN_PART_SIZE,
    TRANSIENT_ERROR_CODES,
)

logger = logging.getLogger(__name__)


def translate_error(error: Exception, name: Optional[str] = None) -> TransferError:
    """
    Map a boto3/botocore exception onto the transfer error hierarchy.

    Args:
        error: Exception raised by a boto3 call
        name: Object key the call was about, if any

    Returns:
        ObjectNotFoundError, TransientStoreError or PermanentStoreError
    """
    if isinstance(error, ClientError):
        code = str(error.response.get('Error', {}).get('Code', ''))
        status_code = error.response.get('ResponseMetadata', {}).get('HTTPStatusCode') or 0
        if code in NOT_FOUND_ERROR_CODES:
            return ObjectNotFoundError(f"Object not found: {name}", name=name)
        if code in TRANSIENT_ERROR_CODES or status_code >= 500:
            return TransientStoreError(f"S3 temporarily failed ({code}): {error}", name=name)
        return PermanentStoreError(f"S3 rejected the request ({code}): {error}", name=name)

    if isinstance(error, (BotoConnectionError, HTTPClientError)):
        return TransientStoreError(f"S3 connection failed: {error}", name=name)

    return PermanentStoreError(f"S3 client error: {error}", name=name)


class S3BlockUpload:
    """
    One multipart upload in progress.

    Consecutive blocks are packed into parts of blocks_per_part blocks, so
    every part but the last meets the S3 minimum part size. A part is sent
    as soon as all of its blocks are staged; the trailing part is sent at
    commit.
    """

    def __init__(self, store: "S3BlockStore", name: str, content_type: str, upload_id: str):
        self.store = store
        self.name = name
        self.content_type = content_type
        self.upload_id = upload_id
        self.blocks_per_part = store.blocks_per_part
        self.pending: Dict[int, Dict[int, bytes]] = {}   # part index -> sequence -> data
        self.part_etags: Dict[int, str] = {}             # part number -> ETag
        self.in_flight: Set[Future] = set()

    async def stage(self, block: Block) -> BlockReceipt:
        """Stage one block; uploads its part once the part is complete."""
        index = block.sequence // self.blocks_per_part
        blocks = self.pending.setdefault(index, {})
        blocks[block.sequence] = block.data

        etag = None
        if len(blocks) == self.blocks_per_part:
            del self.pending[index]
            etag = await self._upload_part(index + 1, blocks)

        return BlockReceipt(
            sequence=block.sequence,
            block_id=block.block_id,
            size=block.size,
            etag=etag
        )

    async def _upload_part(self, part_number: int, blocks: Dict[int, bytes]) -> str:
        body = b"".join(blocks[sequence] for sequence in sorted(blocks))
        future = self.store.executor.submit(
            functools.partial(
                self.store.client.upload_part,
                Bucket=self.store.container,
                Key=self.name,
                UploadId=self.upload_id,
                PartNumber=part_number,
                Body=body
            )
        )
        self.in_flight.add(future)
        future.add_done_callback(self.in_flight.discard)

        response = await self.store._wait(future, 'upload_part', self.name)
        self.part_etags[part_number] = response['ETag']
        logger.debug(f"Uploaded part {part_number} of {self.name} ({len(blocks)} blocks, {len(body)} bytes)")
        return response['ETag']

    async def commit(self, receipts: Sequence[BlockReceipt]) -> ObjectInfo:
        """Send the trailing part, then complete the upload with parts in order."""
        for index in sorted(self.pending):
            await self._upload_part(index + 1, self.pending.pop(index))

        part_count = math.ceil(len(receipts) / self.blocks_per_part)
        if sorted(self.part_etags) != list(range(1, part_count + 1)):
            raise BlockListError(
                f"Uploaded parts {sorted(self.part_etags)} do not match {len(receipts)} blocks",
                name=self.name
            )

        parts = [
            {'ETag': self.part_etags[part_number], 'PartNumber': part_number}
            for part_number in range(1, part_count + 1)
        ]
        response = await self.store._call(
            'complete_multipart_upload',
            self.name,
            Bucket=self.store.container,
            Key=self.name,
            UploadId=self.upload_id,
            MultipartUpload={'Parts': parts}
        )
        logger.info(f"Completed multipart upload: {self.store.container}/{self.name} ({len(parts)} parts)")

        return ObjectInfo(
            name=self.name,
            content_type=self.content_type,
            size=sum(receipt.size for receipt in receipts),
            etag=response.get('ETag')
        )

    async def abort(self) -> None:
        """
        Abort the multipart upload so S3 drops the staged parts.

        Part uploads still running on the executor are waited for first;
        a part that lands after the abort would otherwise be kept.
        """
        self.pending.clear()
        running = [asyncio.wrap_future(future) for future in list(self.in_flight)]
        if running:
            await asyncio.wait(running)

        await self.store._call(
            'abort_multipart_upload',
            self.name,
            Bucket=self.store.container,
            Key=self.name,
            UploadId=self.upload_id
        )
        logger.info(f"Aborted multipart upload: {self.store.container}/{self.name} ({self.upload_id})")


class S3BlockStore:
    """Block store backed by an S3-compatible service."""

    def __init__(self, settings: Settings, client=None):
        """
        Initialize S3 client from settings.

        Blocks smaller than the S3 minimum part size are packed, several to a
        part, so every non-final part is at least S3_MIN_PART_SIZE bytes.

        Args:
            settings: Application settings
            client: Pre-built boto3 S3 client (tests pass a stubbed one)
        """
        if settings.CHUNK_SIZE > S3_MAX_PART_SIZE:
            raise ValueError(
                f"CHUNK_SIZE {settings.CHUNK_SIZE} exceeds the S3 part limit of {S3_MAX_PART_SIZE} bytes"
            )

        self.blocks_per_part = math.ceil(S3_MIN_PART_SIZE / settings.CHUNK_SIZE)
        self.max_blocks = S3_MAX_PARTS * self.blocks_per_part

        self.container = settings.CONTAINER_NAME
        self.region = settings.S3_REGION
        self.endpoint_url = settings.s3_endpoint_url

        if client is None:
            client = boto3.client(
                's3',
                endpoint_url=self.endpoint_url,
                aws_access_key_id=settings.S3_ACCESS_KEY,
                aws_secret_access_key=settings.S3_SECRET_KEY,
                config=Config(signature_version='s3v4'),
                region_name=self.region
            )
        self.client = client

        # boto3 is blocking; every call runs here so the event loop stays free
        self.executor = ThreadPoolExecutor(
            max_workers=settings.S3_MAX_WORKERS,
            thread_name_prefix="s3-block"
        )

        logger.info(
            f"S3 block store initialized: {self.endpoint_url or 'aws'} / {self.container} "
            f"({self.blocks_per_part} blocks per part)"
        )

    async def _wait(self, future: Future, operation: str, name: Optional[str]):
        """Await an executor future, translating boto3 errors."""
        try:
            return await asyncio.wrap_future(future)
        except (ClientError, BotoCoreError) as e:
            error = translate_error(e, name)
            if not isinstance(error, ObjectNotFoundError):
                logger.error(f"S3 call {operation} failed for {name}: {e}")
            raise error from e

    async def _run(self, func, name: Optional[str], *args, **kwargs):
        """Run a blocking boto3 call in the executor, translating its errors."""
        future = self.executor.submit(functools.partial(func, *args, **kwargs))
        return await self._wait(future, getattr(func, '__name__', str(func)), name)

    async def _call(self, operation: str, name: Optional[str], **params):
        return await self._run(getattr(self.client, operation), name, **params)

    async def begin_upload(self, name: str, content_type: str) -> S3BlockUpload:
        response = await self._call(
            'create_multipart_upload',
            name,
            Bucket=self.container,
            Key=name,
            ContentType=content_type
        )
        logger.debug(f"Created multipart upload {response['UploadId']} for {self.container}/{name}")
        return S3BlockUpload(self, name, content_type, response['UploadId'])

    async def exists(self, name: str) -> bool:
        """
        Check if an object exists in the container.

        Only a not-found answer means False; any other failure propagates.
        """
        try:
            await self._call('head_object', name, Bucket=self.container, Key=name)
            return True
        except ObjectNotFoundError:
            return False

    async def open(self, name: str, chunk_size: int) -> ObjectStream:
        """Start a GET; the body is read piecewise as the stream is consumed."""
        response = await self._call('get_object', name, Bucket=self.container, Key=name)
        body = response['Body']
        info = ObjectInfo(
            name=name,
            content_type=response.get('ContentType') or 'application/octet-stream',
            size=response.get('ContentLength', 0),
            etag=response.get('ETag')
        )
        return ObjectStream(info=info, chunks=self._read_body(name, body, chunk_size), close=body.close)

    async def _read_body(self, name: str, body, chunk_size: int) -> AsyncIterator[bytes]:
        try:
            while True:
                chunk = await self._run(body.read, name, chunk_size)
                if not chunk:
                    break
                yield chunk
        finally:
            body.close()

    async def ensure_container(self) -> None:
        """
        Ensure the container bucket exists, create it if it doesn't.

        Raises:
            TransferError: If the bucket can't be checked or created
        """
        try:
            await self._call('head_bucket', None, Bucket=self.container)
            logger.info(f"Bucket exists: {self.container}")
        except ObjectNotFoundError:
            params = {'Bucket': self.container}
            if self.region != 'us-east-1':
                params['CreateBucketConfiguration'] = {'LocationConstraint': self.region}
            await self._call('create_bucket', None, **params)
            logger.info(f"Created bucket: {self.container}")

    async def ping(self) -> None:
        await self._call('head_bucket', None, Bucket=self.container)

    def close(self) -> None:
        self.executor.shutdown(wait=False)
