"""Sinks that consume optimized images: local export and S3 upload."""

from pathlib import Path
from typing import List, Optional, Tuple, Union

from .error_handling import retry_s3_operation, with_s3_error_handling
from .exceptions import UploadError
from .image_utils import export_filename
from .models import BatchRun, ProcessedImage
from .observability import StructuredLogger
from .protocols import LoggerProtocol, S3ClientProtocol, UploadSink


class LocalExportSink(UploadSink):
    """Writes optimized images into a local directory."""

    def __init__(self, output_dir: Union[str, Path], logger: Optional[LoggerProtocol] = None):
        self._output_dir = Path(output_dir)
        self._logger = logger or StructuredLogger("export")

    @property
    def output_dir(self) -> Path:
        return self._output_dir

    def upload(self, data: bytes, filename: str, content_type: str) -> bool:
        try:
            self._output_dir.mkdir(parents=True, exist_ok=True)
            (self._output_dir / filename).write_bytes(data)
        except OSError as e:
            self._logger.error(f"Failed to write {filename} to {self._output_dir}: {e}")
            return False
        self._logger.info(f"Downloaded {filename} to {self._output_dir}")
        return True


@retry_s3_operation()
@with_s3_error_handling
def _put_s3_object(s3_client, bucket: str, key: str, data: bytes, content_type: str):
    s3_client.put_object(Bucket=bucket, Key=key, Body=data, ContentType=content_type)


class S3UploadSink(UploadSink):
    """Uploads optimized images to an S3 bucket under an optional prefix."""

    def __init__(
        self,
        s3_client: S3ClientProtocol,
        bucket: str,
        prefix: str = "",
        logger: Optional[LoggerProtocol] = None,
    ):
        self._s3_client = s3_client
        self._bucket = bucket
        self._prefix = prefix
        self._logger = logger or StructuredLogger("upload")

    def object_key(self, filename: str) -> str:
        if self._prefix:
            return f"{self._prefix.rstrip('/')}/{filename}"
        return filename

    def upload(self, data: bytes, filename: str, content_type: str) -> bool:
        key = self.object_key(filename)
        try:
            _put_s3_object(self._s3_client, self._bucket, key, data, content_type)
        except UploadError as e:
            self._logger.error(f"Failed to upload {filename} to s3://{self._bucket}/{key}: {e}")
            return False
        self._logger.info(f"Uploaded {filename} to s3://{self._bucket}/{key}")
        return True


def publish_item(
    item: ProcessedImage, sink: UploadSink, index: Optional[int] = None
) -> Optional[str]:
    """
    Hand a succeeded item's bytes to ``sink``.

    Returns:
        The export filename on success, ``None`` when the item has no result
        or the sink reported a failure
    """
    if item.result is None:
        return None
    filename = export_filename(item.original.filename, item.result.format, index)
    if sink.upload(item.result.data, filename, item.result.mime_type):
        return filename
    return None


def publish_batch(
    run: BatchRun, sink: UploadSink, numbered: bool = False
) -> Tuple[List[str], List[str]]:
    """
    Publish every succeeded item of ``run``.

    With ``numbered`` the 1-based position is appended to each filename so
    that inputs sharing a stem do not overwrite each other.

    Returns:
        ``(published filenames, filenames of items that failed to publish)``
    """
    published: List[str] = []
    failed: List[str] = []
    for item in run.items:
        if not item.succeeded:
            continue
        filename = publish_item(item, sink, item.index + 1 if numbered else None)
        if filename is None:
            failed.append(item.original.filename)
        else:
            published.append(filename)
    return published, failed
