"""批处理编排：持有资产队列，驱动单资产状态迁移并执行批量操作。"""

from __future__ import annotations

import asyncio
import logging
from itertools import count
from typing import Callable, Iterable, Iterator, Optional

from image_transcoder.core.config import BatchConfig, Operation
from image_transcoder.core.exceptions import (
    AssetBusyError,
    AssetNotFoundError,
    BundleError,
    DecodeError,
    EncodeError,
)
from image_transcoder.core.models import (
    AssetMetadata,
    AssetRecord,
    AssetStatus,
    FileOutcome,
    OperationResult,
    OutputFile,
    OutputMetadata,
)
from image_transcoder.core.output_manager import DownloadSink
from image_transcoder.core.progress import ProgressUpdate
from image_transcoder.core.scanner import SourceFile, is_image_mime
from image_transcoder.processing.bundler import bundle_outputs
from image_transcoder.processing.codecs import FORMATS, bytes_to_kib, format_for_mime, replace_extension
from image_transcoder.processing.compressor import LOSSY_FORMAT, compress_to_target
from image_transcoder.processing.converter import convert_image
from image_transcoder.processing.decoder import decode_asset
from image_transcoder.processing.resizer import resize_image
from image_transcoder.processing.similarity import looks_like_source, measure_similarity

LOGGER = logging.getLogger(__name__)

ProgressCallback = Optional[Callable[[ProgressUpdate], None]]

_CODEC_ERRORS = (DecodeError, EncodeError, BundleError)


class BatchJob:
    """一个工具视图中的图片批次。

    记录按插入顺序排列；批量操作逐个串行执行，同一时刻最多只有一条记录处于
    ``processing`` 状态。所有编解码调用都在线程中执行，事件循环只在
    “请求解码”和“请求编码”处挂起。
    """

    def __init__(self, config: Optional[BatchConfig] = None, progress_callback: ProgressCallback = None) -> None:
        self.config = config or BatchConfig()
        self.config.validate()
        self._records: dict[int, AssetRecord] = {}
        self._ids = count(1)
        self._progress_callback = progress_callback
        self._bulk_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # 队列管理
    # ------------------------------------------------------------------
    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[AssetRecord]:
        return iter(list(self._records.values()))

    @property
    def records(self) -> list[AssetRecord]:
        return list(self._records.values())

    def get(self, record_id: int) -> AssetRecord:
        try:
            return self._records[record_id]
        except KeyError:
            raise AssetNotFoundError(f"记录不存在: {record_id}") from None

    async def add_file(self, data: bytes, name: str, mime_type: Optional[str]) -> Optional[AssetRecord]:
        """加入一个上传文件并立即解码。

        MIME 类型不是 image/* 的文件被直接丢弃并返回 None。解码失败时仍会创建记录，
        状态为 ``error``。
        """

        if not is_image_mime(mime_type):
            LOGGER.debug("忽略非图片文件 %s (%s)", name, mime_type)
            return None

        record_id = next(self._ids)
        try:
            decoded = await asyncio.to_thread(decode_asset, data, name, mime_type)
        except DecodeError as exc:
            LOGGER.error("记录 %d (%s) 解码失败: %s", record_id, name, exc)
            record = AssetRecord(
                id=record_id,
                original_bytes=data,
                original_metadata=AssetMetadata(
                    name=name, byte_size=len(data), mime_type=mime_type or "", width=0, height=0
                ),
                status=AssetStatus.ERROR,
                error_message=str(exc),
            )
        else:
            record = AssetRecord(
                id=record_id,
                original_bytes=data,
                original_metadata=decoded.metadata,
                decoded_bitmap=decoded.bitmap,
            )
        self._records[record_id] = record
        return record

    async def add_sources(self, sources: Iterable[SourceFile]) -> list[AssetRecord]:
        """按顺序加入扫描得到的文件。"""

        added: list[AssetRecord] = []
        for source in sources:
            record = await self.add_file(source.read_bytes(), source.name, source.mime_type)
            if record is not None:
                added.append(record)
        return added

    def remove(self, record_id: int) -> None:
        """立即删除记录，无论其当前状态。"""

        record = self._records.pop(record_id, None)
        if record is None:
            raise AssetNotFoundError(f"记录不存在: {record_id}")
        if record.status is not AssetStatus.PROCESSING:
            record.release()

    def clear(self) -> None:
        """删除所有记录并释放位图与输出缓冲。"""

        records = list(self._records.values())
        self._records.clear()
        for record in records:
            if record.status is not AssetStatus.PROCESSING:
                record.release()

    # ------------------------------------------------------------------
    # 单资产操作
    # ------------------------------------------------------------------
    async def process(self, record_id: int, operation: Operation) -> AssetRecord:
        """对单条记录执行操作；任何失败都转化为记录的 ``error`` 状态。

        处理期间记录被删除时结果作废：不写入输出与状态，只释放资源。
        """

        record = self.get(record_id)
        if record.status is AssetStatus.PROCESSING:
            raise AssetBusyError(f"记录正在处理中: {record_id}")

        operation = Operation(operation)
        record.status = AssetStatus.PROCESSING
        record.error_message = None

        try:
            output, metadata = await self._run_operation(record, operation)
        except _CODEC_ERRORS as exc:
            LOGGER.error("记录 %d (%s) 执行 %s 失败: %s", record.id, record.name, operation.value, exc)
            outcome = None
            failure = str(exc)
        except Exception as exc:  # noqa: BLE001
            LOGGER.exception("记录 %d (%s) 执行 %s 时出现未预期错误", record.id, record.name, operation.value)
            outcome = None
            failure = f"{type(exc).__name__}: {exc}"
        else:
            outcome = (output, metadata)
            failure = None

        if record.id not in self._records:
            LOGGER.debug("记录 %d 已在处理期间被删除，丢弃结果", record.id)
            record.release()
            return record

        if outcome is None:
            record.output_file = None
            record.output_metadata = None
            record.error_message = failure
            record.status = AssetStatus.ERROR
        else:
            record.output_file, record.output_metadata = outcome
            record.status = AssetStatus.COMPLETED
            LOGGER.info(
                "记录 %d (%s) 完成 %s: %.2f KB", record.id, record.name, operation.value, record.output_metadata.size_kb
            )
        return record

    async def run_all(self, operation: Operation) -> list[AssetRecord]:
        """串行处理所有 ``ready`` 状态的记录，单条失败不影响后续记录。

        同一批次的批量操作互斥：后发起的调用等待前一次结束后，
        只处理届时仍为 ``ready`` 的记录。
        """

        operation = Operation(operation)
        async with self._bulk_lock:
            pending = [record for record in self._records.values() if record.status is AssetStatus.READY]
            total = len(pending)
            processed: list[AssetRecord] = []
            self._emit_progress(operation, 0, total)

            for index, record in enumerate(pending, start=1):
                if record.id not in self._records or record.status is not AssetStatus.READY:
                    LOGGER.debug("记录 %d 已被删除或不再待处理，跳过", record.id)
                    self._emit_progress(operation, index, total, record.name)
                    continue
                await self.process(record.id, operation)
                if record.id in self._records:
                    processed.append(record)
                self._emit_progress(operation, index, total, record.name)

            self._emit_progress(operation, total, total, finished=True)
            return processed

    async def _run_operation(self, record: AssetRecord, operation: Operation) -> tuple[OutputFile, OutputMetadata]:
        bitmap = record.decoded_bitmap
        if bitmap is None:
            raise DecodeError(record.error_message or f"记录没有可用的位图: {record.name}")

        original = record.original_metadata
        if operation is Operation.COMPRESS:
            settings = self.config.compression
            result: OperationResult = await asyncio.to_thread(
                compress_to_target,
                bitmap,
                settings.target_size_kb,
                settings.initial_quality,
                original_size=original.byte_size,
            )
            output = OutputFile(
                name=replace_extension(original.name, LOSSY_FORMAT.extension),
                data=result.output_bytes,
                mime_type=LOSSY_FORMAT.mime_type,
            )
            metadata = OutputMetadata(
                operation=operation,
                size_kb=result.achieved_size_kb,
                mime_type=LOSSY_FORMAT.mime_type,
                width=bitmap.width,
                height=bitmap.height,
                quality=result.achieved_quality,
                compression_ratio_percent=result.compression_ratio_percent,
            )
        elif operation is Operation.CONVERT:
            settings = self.config.conversion
            result = await asyncio.to_thread(
                convert_image,
                bitmap,
                settings.target_format,
                original.name,
                quality=settings.quality,
                lossless=settings.lossless,
            )
            output = OutputFile(name=result.output_name, data=result.output_bytes, mime_type=result.output_mime_type)
            metadata = OutputMetadata(
                operation=operation,
                size_kb=result.output_size_kb,
                mime_type=result.output_mime_type,
                width=bitmap.width,
                height=bitmap.height,
                quality=settings.quality if FORMATS[settings.target_format].lossy and not settings.lossless else None,
            )
        else:
            settings = self.config.resize
            result = await asyncio.to_thread(
                resize_image,
                bitmap,
                settings.width,
                settings.height,
                settings.lock_aspect_ratio,
                mime_type=original.mime_type,
            )
            name = original.name
            if result.output_mime_type != original.mime_type:
                fallback = format_for_mime(result.output_mime_type)
                name = replace_extension(name, fallback.extension if fallback else ".png")
            output = OutputFile(name=name, data=result.output_bytes, mime_type=result.output_mime_type)
            metadata = OutputMetadata(
                operation=operation,
                size_kb=result.output_size_kb,
                mime_type=result.output_mime_type,
                width=result.new_width,
                height=result.new_height,
            )

        if self.config.check_similarity:
            metadata.ssim = await asyncio.to_thread(measure_similarity, bitmap, output.data)
            if not looks_like_source(metadata.ssim):
                LOGGER.warning("记录 %d (%s) 的输出与原图差异明显: SSIM=%.3f", record.id, record.name, metadata.ssim)
        return output, metadata

    # ------------------------------------------------------------------
    # 下载与报告
    # ------------------------------------------------------------------
    def collect_outputs(self) -> list[OutputFile]:
        """按插入顺序返回已有输出的文件，没有输出的记录被静默跳过。"""

        return [
            record.output_file
            for record in self._records.values()
            if record.status is AssetStatus.COMPLETED and record.output_file is not None
        ]

    def export(self, sink: DownloadSink, archive_name: str = "images.zip") -> Optional[OutputFile]:
        """将输出交给下载接口：单个文件直接下载，两个及以上打包为归档。

        没有任何输出时不做任何事并返回 None。
        """

        outputs = self.collect_outputs()
        if not outputs:
            LOGGER.info("没有可下载的输出")
            return None

        artifact = bundle_outputs(outputs, archive_name)
        sink.create_downloadable_handle(artifact.data, artifact.name)
        return artifact

    def outcomes(self) -> list[FileOutcome]:
        """生成每条记录的报告行。"""

        rows: list[FileOutcome] = []
        for record in self._records.values():
            meta = record.output_metadata
            rows.append(
                FileOutcome(
                    source_name=record.name,
                    status=record.status.value,
                    operation=meta.operation.value if meta else None,
                    output_name=record.output_file.name if record.output_file else None,
                    original_size_kb=bytes_to_kib(record.original_metadata.byte_size),
                    output_size_kb=meta.size_kb if meta else None,
                    message=record.error_message,
                    ssim=meta.ssim if meta else None,
                )
            )
        return rows

    def _emit_progress(
        self,
        operation: Operation,
        completed: int,
        total: int,
        current_name: Optional[str] = None,
        *,
        finished: bool = False,
    ) -> None:
        if not self._progress_callback:
            return
        self._progress_callback(
            ProgressUpdate(
                operation=operation.value,
                total=total,
                completed=completed,
                current_name=current_name,
                finished=finished,
            )
        )
