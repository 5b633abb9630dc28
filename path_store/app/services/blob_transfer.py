from email.utils import format_datetime
from typing import AsyncIterator, Dict

from starlette.concurrency import run_in_threadpool

from path_store import config
from path_store.app.models.content_entry import ContentEntry
from path_store.app.repository.content_repository import BlobReader, ContentStore
from path_store.app.services.schema import SchemaInitializer
from path_store.logger_config import setup_logger

logger = setup_logger()


def response_headers(entry: ContentEntry) -> Dict[str, str]:
    """HTTP metadata for a stored entry. Content-Type is passed through untouched."""
    return {
        "Content-Type": entry.content_type,
        "Content-Length": str(entry.length),
        "Last-Modified": format_datetime(entry.last_modified, usegmt=True),
    }


class BlobDownload:
    """An opened entry whose payload has not been streamed yet."""

    def __init__(self, reader: BlobReader, chunk_size: int = config.CHUNK_SIZE):
        self._reader = reader
        self.chunk_size = chunk_size

    @property
    def entry(self) -> ContentEntry:
        return self._reader.entry

    @property
    def headers(self) -> Dict[str, str]:
        return response_headers(self.entry)

    async def stream(self) -> AsyncIterator[bytes]:
        """Yield the payload chunk by chunk, then release the reader.

        The freshness touch only happens once the whole payload went out.
        """
        path = self.entry.path
        try:
            while chunk := await run_in_threadpool(self._reader.read, self.chunk_size):
                yield chunk
        except Exception as e:
            logger.error(f"Streaming {path} aborted: {e}")
            await run_in_threadpool(self._reader.close)
            raise
        except BaseException:
            # Client went away or the task was cancelled; release without awaiting
            logger.info(f"Streaming {path} cancelled")
            self._reader.close()
            raise
        await run_in_threadpool(self._reader.close, True)

    def close(self) -> None:
        self._reader.close()


class BlobTransfer:
    """Moves payloads between HTTP bodies and the content store without buffering them."""

    def __init__(self, store: ContentStore, schema: SchemaInitializer, chunk_size: int = config.CHUNK_SIZE):
        self.store = store
        self.schema = schema
        self.chunk_size = chunk_size

    async def prepare(self) -> None:
        """Make sure the schema exists before the first store operation."""
        if not self.schema.done:
            await run_in_threadpool(self.schema.ensure)

    async def download(self, path: str) -> BlobDownload:
        await self.prepare()
        reader = await run_in_threadpool(self.store.open_reader, path)
        return BlobDownload(reader, self.chunk_size)

    async def upload(self, path: str, content_type: str, length: int,
                     body: AsyncIterator[bytes], replace: bool = False) -> int:
        """Stream `body` into a freshly allocated row and commit it.

        Returns the number of bytes written. Any failure, including the client
        disconnecting, rolls the row back before the error propagates.
        """
        await self.prepare()
        begin = self.store.begin_replace if replace else self.store.begin_create
        pending = await run_in_threadpool(begin, path, content_type, length)
        try:
            async for chunk in body:
                if chunk:
                    await run_in_threadpool(pending.write, chunk)
        except Exception as e:
            logger.warning(f"Upload to {path} failed after {pending.written}/{length} bytes: {e}")
            await run_in_threadpool(pending.abort)
            raise
        except BaseException:
            # Cancelled; roll back without awaiting
            pending.abort()
            raise
        await run_in_threadpool(pending.commit)
        logger.debug(f"Stored {pending.written} bytes at {path} ({content_type})")
        return pending.written

    async def remove(self, path: str) -> None:
        await self.prepare()
        await run_in_threadpool(self.store.delete, path)
