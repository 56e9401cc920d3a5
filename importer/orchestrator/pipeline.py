"""Import pipeline - drives one item from checking to polling."""
import logging
from typing import Callable, Optional

from ..errors import DuplicateImportError, FileTooLargeError, ImporterError, describe_error
from ..models import (
    ImportConfig,
    ImportItem,
    ImportStage,
    Rendition,
    SourceMetadata,
    select_rendition,
    select_thumbnail,
)
from ..protocols import IDestinationClient, ISourceClient
from ..utils.formatting import format_bytes
from .queue import ImportQueue

logger = logging.getLogger(__name__)


class ItemRemovedError(ImporterError):
    """The item left the queue while its pipeline was running."""


class ImportPipeline:
    """
    Runs the transfer stages for a single item.

    Stages: checking -> fetching_metadata -> downloading -> creating_record
    -> uploading -> [uploading_thumbnail] -> polling. Any failure moves the
    item to error; a failed thumbnail does not.
    """

    def __init__(
        self,
        source: ISourceClient,
        destination: IDestinationClient,
        queue: ImportQueue,
        config: Optional[ImportConfig] = None,
    ):
        self._source = source
        self._destination = destination
        self._queue = queue
        self._config = config or ImportConfig()

    def _update(self, item_id: str, transform: Callable[[ImportItem], ImportItem]) -> ImportItem:
        item = self._queue.update(item_id, transform)
        if item is None:
            raise ItemRemovedError(f"Import {item_id} was removed")
        return item

    async def run(self, item: ImportItem) -> Optional[ImportItem]:
        """
        Run all stages for ``item``.

        Returns the item as left in the queue (stage polling or error), or
        None if it was removed meanwhile.
        """
        try:
            return await self._run_stages(item.id, item.source_id, item)
        except ItemRemovedError:
            logger.info("Import %s removed during transfer", item.id)
            return None
        except Exception as e:
            message = describe_error(e)
            logger.error("Import %s (%s) failed: %s", item.id, item.source_id, message)
            return self._queue.update(
                item.id, lambda i: i if i.is_terminal else i.fail(message)
            )

    async def _run_stages(self, item_id: str, source_id: str, item: ImportItem) -> ImportItem:
        options = item.options

        # checking
        self._update(item_id, lambda i: i.advance(
            ImportStage.CHECKING, "Checking for existing import..."
        ))
        existing = await self._destination.find_by_source_tag(source_id)
        if existing is not None:
            raise DuplicateImportError(existing.record_id, existing.title)

        # fetching_metadata
        self._update(item_id, lambda i: i.advance(
            ImportStage.FETCHING_METADATA, "Fetching Vimeo data...", 5
        ))
        metadata = await self._source.get_metadata(source_id)
        self._update(item_id, lambda i: i.with_metadata(metadata).with_progress(10))
        rendition = self._select_rendition(metadata)

        # downloading
        lo, hi = self._config.download_range
        self._update(item_id, lambda i: i.advance(
            ImportStage.DOWNLOADING, f"Downloading ({format_bytes(rendition.size)})...", lo
        ))

        def on_download(percent: int) -> None:
            progress = self._config.map_progress(percent, (lo, hi))
            self._update(item_id, lambda i: i.with_progress(progress, f"Downloading... {percent}%"))

        downloaded = await self._source.download(rendition.link, on_download)

        # creating_record
        self._update(item_id, lambda i: i.advance(
            ImportStage.CREATING_RECORD, "Creating video in Ignite...", hi + 2
        ))
        fields = options.to_record_fields(metadata.title, source_id, self._config.max_title_length)
        record = await self._destination.create_record(fields)
        up_lo, up_hi = self._config.upload_range
        self._update(item_id, lambda i: i.with_destination(record.record_id).with_progress(up_lo))

        # uploading
        self._update(item_id, lambda i: i.advance(ImportStage.UPLOADING, "Uploading to Ignite..."))

        def on_upload(percent: int) -> None:
            progress = self._config.map_progress(percent, (up_lo, up_hi))
            self._update(item_id, lambda i: i.with_progress(progress, f"Uploading... {percent}%"))

        content_type = rendition.type or downloaded.content_type or "video/mp4"
        await self._destination.upload_binary(
            record.upload_target, downloaded.content, content_type, on_upload
        )

        # uploading_thumbnail (only when the source has one)
        if metadata.has_thumbnail:
            await self._transfer_thumbnail(item_id, record.record_id, metadata, up_hi)

        # polling is driven by the orchestrator from here
        return self._update(item_id, lambda i: i.advance(
            ImportStage.POLLING, "Processing...", 98
        ))

    def _select_rendition(self, metadata: SourceMetadata) -> Rendition:
        rendition = select_rendition(metadata.renditions)
        limit_mb = self._config.max_file_size_mb
        if limit_mb is not None and rendition.size > limit_mb * 1024 * 1024:
            raise FileTooLargeError(
                f"Video is too large, max size is {limit_mb:g} MB "
                f"({rendition.size / 1024 / 1024:.2f} MB)"
            )
        return rendition

    async def _transfer_thumbnail(
        self,
        item_id: str,
        record_id: str,
        metadata: SourceMetadata,
        after_upload: float,
    ) -> None:
        self._update(item_id, lambda i: i.advance(
            ImportStage.UPLOADING_THUMBNAIL, "Uploading thumbnail...", after_upload + 2
        ))
        try:
            thumbnail = select_thumbnail(metadata.thumbnails)
            image = await self._source.download(thumbnail.link)
            url = await self._destination.upload_thumbnail(record_id, image.content)
        except ItemRemovedError:
            raise
        except Exception as e:
            logger.warning("Thumbnail upload failed for %s: %s", item_id, describe_error(e))
            return
        self._update(item_id, lambda i: i.with_thumbnail(url).with_progress(after_upload + 5))
