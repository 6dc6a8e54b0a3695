#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# @Time    : 2026/10/14 10:05
# @Author  : hejun
"""
向量迁移模块
把存储中的地址分批向量化并写入向量索引，单批失败不影响后续批次
"""
import time
from dataclasses import dataclass, asdict
from typing import Any, Callable, Dict, List, Optional, Tuple

from tqdm import tqdm

from core.embedding_provider import build_embedding_text
from core.exceptions import ProviderUnavailable
from core.filter_expression import MATCH_ALL
from core.models import clean_value
from utils.logger import setup_logging

# 初始化日志记录器
migration_log = setup_logging('vector_migration')
logger = migration_log.get_logger()

# 写入向量元数据的字段，驼峰字段兼容旧版读取方
_METADATA_FIELDS = (
    'address_raw', 'address_norm', 'address_canonical', 'address_struct',
    'via_code', 'via_label', 'primary_number', 'secondary_number',
    'quadrant', 'neighborhood', 'municipality', 'department',
)
_LEGACY_FIELDS = {
    'addressRaw': 'address_raw',
    'addressNorm': 'address_norm',
    'addressCanonical': 'address_canonical',
    'viaCode': 'via_code',
    'viaLabel': 'via_label',
    'primaryNumber': 'primary_number',
    'secondaryNumber': 'secondary_number',
}


@dataclass
class MigrationProgress:
    total: int = 0
    processed: int = 0
    failed: int = 0
    percentage: int = 0
    current_batch: int = 0
    total_batches: int = 0
    estimated_minutes_remaining: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def build_vector_metadata(row: Dict[str, Any], embedding_text: str) -> Dict[str, Any]:
    """向量索引中保存的元数据（None 字段不写入）"""
    metadata = {'id': str(row['id'])}
    for name in _METADATA_FIELDS:
        value = clean_value(row.get(name))
        if value is not None:
            metadata[name] = value
    for legacy, name in _LEGACY_FIELDS.items():
        if name in metadata:
            metadata[legacy] = metadata[name]
    metadata['addressId'] = metadata['id']
    transaction_value = clean_value(row.get('transaction_value'))
    metadata['transaction_value_cop'] = str(transaction_value) if transaction_value is not None else '0.0'
    metadata['embeddingText'] = embedding_text
    return metadata


class VectorMigrationService:
    """向量迁移服务"""

    def __init__(self, storage: Any, embedding_provider: Any, vector_index: Any,
                 config: Dict[str, Any] = None,
                 sleep: Callable[[float], None] = time.sleep):
        """
        Args:
            storage: 存储读取器（count / select）
            embedding_provider: 向量化服务
            vector_index: 向量索引
            config: 迁移配置（Config.ALGORITHM_CONFIG['migration']）
            sleep: 等待函数，测试时可替换
        """
        self.storage = storage
        self.embedding_provider = embedding_provider
        self.vector_index = vector_index
        self.config = config or {}
        self._sleep = sleep

    def validate_services(self):
        if self.embedding_provider is None or not self.embedding_provider.is_configured():
            raise ProviderUnavailable('embedding', "向量化服务未配置 (REPLICATE_API_TOKEN)")
        if self.vector_index is None:
            raise ProviderUnavailable('vector_index', "向量索引未配置")
        logger.info("服务配置检查通过")

    def migrate_all(self, batch_size: Optional[int] = None,
                    max_retries: Optional[int] = None,
                    test_mode: bool = False) -> MigrationProgress:
        """
        迁移全部地址

        Args:
            batch_size: 每批条数
            max_retries: 单批写入最大尝试次数
            test_mode: 只处理前 test_mode_limit 条

        Returns:
            最终进度（已处理/失败条数）
        """
        batch_size = batch_size or self.config.get('batch_size', 50)
        max_retries = max_retries or self.config.get('max_retries', 3)
        batch_pause = self.config.get('batch_pause_seconds', 2.0)

        self.validate_services()
        self.vector_index.ensure_collection(getattr(self.embedding_provider, 'dimension', 768))

        total_addresses = self.storage.count(MATCH_ALL)
        total = total_addresses
        if test_mode:
            total = min(total_addresses, self.config.get('test_mode_limit', 100))
            logger.warning(f"测试模式：只处理前 {total} 条")

        total_batches = (total + batch_size - 1) // batch_size
        progress = MigrationProgress(total=total, total_batches=total_batches)
        logger.info(f"开始向量迁移: 共 {total} 条, {total_batches} 批, 每批 {batch_size} 条")

        start_time = time.time()
        for batch_index in tqdm(range(total_batches), desc="向量迁移"):
            offset = batch_index * batch_size
            limit = min(batch_size, total - offset)

            processed, failed = self._process_batch(offset, limit, max_retries)
            progress.processed += processed
            progress.failed += failed
            progress.current_batch = batch_index + 1
            self._update_estimate(progress, start_time)

            migration_log.log_progress(progress.processed + progress.failed, total, prefix="向量迁移")

            if batch_index + 1 < total_batches:
                self._sleep(batch_pause)

        success_rate = round(progress.processed / total * 100) if total else 0
        logger.info(f"向量迁移完成: 成功 {progress.processed}/{total}, 失败 {progress.failed}, "
                    f"成功率 {success_rate}%, 耗时 {(time.time() - start_time) / 60:.2f} 分钟")
        return progress

    @staticmethod
    def _update_estimate(progress: MigrationProgress, start_time: float):
        progress.percentage = round(progress.processed / progress.total * 100) if progress.total else 0
        elapsed_minutes = (time.time() - start_time) / 60
        if progress.processed > 0:
            remaining = progress.total - progress.processed
            progress.estimated_minutes_remaining = round(elapsed_minutes / progress.processed * remaining, 2)

    def _process_batch(self, offset: int, limit: int, max_retries: int) -> Tuple[int, int]:
        """处理单批，返回 (成功条数, 失败条数)"""
        try:
            rows = self.storage.select(MATCH_ALL, limit, offset)
            if not rows:
                return 0, 0

            texts = [build_embedding_text(row) for row in rows]
            vectors = self.embedding_provider.embed_batch(texts)
            records = [
                {'id': str(row['id']), 'values': vector, 'metadata': build_vector_metadata(row, text)}
                for row, text, vector in zip(rows, texts, vectors)
            ]
            self._upsert_with_retries(records, max_retries)
            return len(rows), 0

        except Exception as e:
            logger.error(f"处理批次失败 (offset={offset}): {e}")
            return 0, limit

    def _upsert_with_retries(self, records: List[Dict[str, Any]], max_retries: int):
        """写入失败时指数退避重试，用尽后抛出最后一次的异常"""
        for attempt in range(1, max_retries + 1):
            try:
                self.vector_index.upsert(records)
                return
            except Exception as e:
                logger.warning(f"写入向量第 {attempt}/{max_retries} 次失败: {e}")
                if attempt == max_retries:
                    raise
                self._sleep(self.config.get('base_delay_seconds', 1.0) * 2 ** (attempt - 1))

    def post_migration_stats(self) -> Dict[str, Any]:
        return self.vector_index.stats()
