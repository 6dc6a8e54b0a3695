#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# @Time    : 2026/10/13 14:20
# @Author  : hejun
"""
地址检索编排模块

检索顺序固定：
    1. 原始文本向量检索
    2. 原始文本失败或无结果时，用解析字段拼出的标准化文本重试
    3. 语义分支整体失败（向量化/向量索引不可用或超时）时，走结构化范围检索
    4. 结构化检索也失败时抛出 CombinedSearchFailure，同时携带两个原因
"""
import time
from contextlib import contextmanager
from typing import Any, Dict, Iterable, List, Optional

from core.address_normalizer import AddressParser
from core.embedding_provider import build_embedding_text
from core.exceptions import (
    AddressSearchError, CombinedSearchFailure, ProviderTimeout, ProviderUnavailable,
)
from core.models import (
    AddressSummary, MatchResult, NormalizedAddress, SearchMetadata, SearchOptions,
    SearchResult, VectorHit,
)
from core.proximity_planner import ProximityQueryPlanner
from core.similarity_calculator import SimilarityScorer
from utils.logger import setup_logging
from utils.parallel_processor import FuturesTimeoutError, ParallelProcessor

# 初始化日志记录器
logger = setup_logging('search_orchestrator').get_logger()

SOURCE_SEMANTIC = 'semantic'
SOURCE_STRUCTURED = 'structured'
SOURCE_EMPTY = 'empty'


class SearchOrchestrator:
    """地址检索编排器"""

    def __init__(self, storage: Any,
                 parser: Optional[AddressParser] = None,
                 scorer: Optional[SimilarityScorer] = None,
                 planner: Optional[ProximityQueryPlanner] = None,
                 embedding_provider: Any = None,
                 vector_index: Any = None,
                 config: Dict[str, Any] = None,
                 processor: Optional[ParallelProcessor] = None):
        """
        初始化检索编排器

        Args:
            storage: 存储读取器（count / select / select_by_ids）
            parser: 地址解析器
            scorer: 相似度计算器
            planner: 邻近检索条件构建器
            embedding_provider: 向量化服务，None 表示不可用
            vector_index: 向量索引，None 表示不可用
            config: 结构同 Config.ALGORITHM_CONFIG
            processor: 外部调用超时控制器
        """
        self.config = config or {}
        self.search_config = self.config.get('search', {})
        self.timeouts = self.config.get('timeouts', {})

        self.storage = storage
        self.parser = parser or AddressParser(config=self.config.get('normalization', {}))
        self.scorer = scorer or SimilarityScorer(self.config.get('similarity', {}))
        self.planner = planner or ProximityQueryPlanner(self.parser.gazetteer, self.search_config)
        self.embedding_provider = embedding_provider
        self.vector_index = vector_index

        self.processor = processor or ParallelProcessor()

    # ------------------------------------------------------------------
    # 参数
    # ------------------------------------------------------------------

    def default_options(self) -> SearchOptions:
        return SearchOptions(
            search_radius=self.search_config.get('default_radius', 5),
            page=self.search_config.get('default_page', 1),
            limit=self.search_config.get('default_limit', 10),
        )

    def _top_k(self, limit: int) -> int:
        multiplier = self.search_config.get('top_k_multiplier', 3)
        return min(limit * multiplier, self.search_config.get('top_k_cap', 100))

    def _min_score(self, radius: int) -> float:
        """半径越大，最低得分越宽松"""
        for max_radius, score in self.search_config.get('min_score_tiers', [(5, 0.8), (10, 0.7), (20, 0.6)]):
            if radius <= max_radius:
                return score
        return self.search_config.get('min_score_floor', 0.5)

    # ------------------------------------------------------------------
    # 外部调用
    # ------------------------------------------------------------------

    @contextmanager
    def _provider_errors(self, provider: str, timeout: Optional[float]):
        """超时 -> ProviderTimeout，其他异常 -> ProviderUnavailable"""
        try:
            yield
        except FuturesTimeoutError as e:
            raise ProviderTimeout(provider, timeout) from e
        except AddressSearchError:
            raise
        except Exception as e:
            raise ProviderUnavailable(provider, str(e)) from e

    def _call_provider(self, provider: str, func, *args, **kwargs):
        timeout = self.timeouts.get(provider)
        with self._provider_errors(provider, timeout):
            return self.processor.call_with_timeout(func, timeout, *args, **kwargs)

    # ------------------------------------------------------------------
    # 检索入口
    # ------------------------------------------------------------------

    def search_nearby_addresses(self, raw_address: str,
                                options: Optional[SearchOptions] = None) -> SearchResult:
        """
        检索与输入地址相同或相邻的已存地址

        Args:
            raw_address: 原始地址文本
            options: 检索参数，None 使用默认值

        Returns:
            SearchResult

        Raises:
            QueryInvalid: 参数非法（任何 I/O 之前）
            CombinedSearchFailure: 语义检索与结构化检索均失败
        """
        start_time = time.time()
        options = options or self.default_options()
        options.validate(self.search_config.get('max_limit', 100))

        query = self.parser.parse(raw_address)
        logger.info(f"开始检索: {raw_address!r} -> {query.address_struct!r}")

        try:
            return self._semantic_search(raw_address, query, options, start_time)
        except AddressSearchError as semantic_error:
            logger.warning(f"语义检索失败，转为结构化检索: {semantic_error}")
            try:
                return self._structured_search(query, options, start_time)
            except AddressSearchError as structured_error:
                logger.error(f"结构化检索同样失败: {structured_error}")
                raise CombinedSearchFailure(semantic_error, structured_error) from structured_error

    def find_similar_addresses(self, target: NormalizedAddress,
                               criteria: Iterable[Any]) -> List[AddressSummary]:
        """
        按匹配条件查找相似地址（各条件 AND），最多返回100条

        Args:
            target: 目标地址
            criteria: MatchCriterion 集合

        Returns:
            地址摘要列表；没有生效条件时返回空列表
        """
        expr = self.planner.build_similarity_filter(target, criteria)
        if expr is None:
            logger.info("没有生效的匹配条件，返回空结果")
            return []
        if self.storage is None:
            raise ProviderUnavailable('storage', "未配置")

        cap = self.search_config.get('similar_result_cap', 100)
        rows = self._call_provider('storage', self.storage.select, expr, cap, 0)
        return [AddressSummary.from_row(row) for row in rows]

    # ------------------------------------------------------------------
    # 语义检索
    # ------------------------------------------------------------------

    def _vector_query(self, text: str, options: SearchOptions) -> List[VectorHit]:
        vector = self._call_provider('embedding', self.embedding_provider.embed, text)
        return self._call_provider(
            'vector_index', self.vector_index.query,
            vector, self._top_k(options.limit), self._min_score(options.search_radius),
            municipality=options.municipality, neighborhood=options.neighborhood,
        )

    def _semantic_search(self, raw_address: str, query: NormalizedAddress,
                         options: SearchOptions, start_time: float) -> SearchResult:
        if self.embedding_provider is None:
            raise ProviderUnavailable('embedding', "未配置")
        if self.vector_index is None:
            raise ProviderUnavailable('vector_index', "未配置")
        if hasattr(self.embedding_provider, 'is_configured') and not self.embedding_provider.is_configured():
            raise ProviderUnavailable('embedding', "未配置")

        try:
            hits = self._vector_query(raw_address, options)
        except AddressSearchError as e:
            logger.warning(f"原始文本向量检索失败: {e}")
            hits = []

        if hits:
            logger.info(f"原始文本向量检索命中 {len(hits)} 条")
            return self._build_semantic_result(query, hits, options, start_time)

        normalized_text = build_embedding_text({'address_raw': raw_address, **query.to_dict()})
        logger.info(f"使用标准化文本重试向量检索: {normalized_text!r}")
        hits = self._vector_query(normalized_text, options)

        if not hits:
            logger.info("标准化文本向量检索无结果")
            return self._build_result(query, [], 0, options, start_time, SOURCE_EMPTY)

        logger.info(f"标准化文本向量检索命中 {len(hits)} 条")
        return self._build_semantic_result(query, hits, options, start_time)

    def _build_semantic_result(self, query: NormalizedAddress, hits: List[VectorHit],
                               options: SearchOptions, start_time: float) -> SearchResult:
        """补全地址信息、去重、排序后在内存中分页"""
        ids = list(dict.fromkeys(hit.address_id for hit in hits))
        rows = []
        if self.storage is not None:
            try:
                rows = self._call_provider('storage', self.storage.select_by_ids, ids)
            except AddressSearchError as e:
                logger.warning(f"按 id 补全地址失败，使用向量元数据: {e}")
        rows_by_id = {str(row['id']): row for row in rows}

        candidates: List[MatchResult] = []
        seen = set()
        for hit in hits:
            address_id = hit.address_id
            if address_id in seen:
                continue
            seen.add(address_id)

            row = rows_by_id.get(address_id)
            if row is not None:
                summary = AddressSummary.from_row(row)
                candidate = NormalizedAddress.from_row(row)
            else:
                summary = AddressSummary.from_metadata(hit.metadata, address_id)
                candidate = NormalizedAddress.from_row(hit.metadata)
                if candidate.is_empty():
                    candidate = self.parser.parse(summary.address_raw)

            candidates.append(MatchResult(
                address=summary,
                similarity=min(1.0, max(0.0, hit.score)),
                distance=self.scorer.distance(query, candidate),
            ))

        candidates.sort(key=lambda m: m.similarity, reverse=True)
        page = candidates[options.offset:options.offset + options.limit]
        return self._build_result(query, page, len(candidates), options, start_time, SOURCE_SEMANTIC)

    # ------------------------------------------------------------------
    # 结构化检索
    # ------------------------------------------------------------------

    def _structured_search(self, query: NormalizedAddress, options: SearchOptions,
                           start_time: float) -> SearchResult:
        if self.storage is None:
            raise ProviderUnavailable('storage', "未配置")

        predicate = self.planner.build_predicate(query, options)
        timeout = self.timeouts.get('storage')

        with self._provider_errors('storage', timeout):
            results = self.processor.run_concurrently({
                'count': lambda: self.storage.count(predicate),
                'rows': lambda: self.storage.select(predicate, options.limit, options.offset),
            }, timeout)

        matches = []
        for row in results['rows']:
            candidate = NormalizedAddress.from_row(row)
            matches.append(MatchResult(
                address=AddressSummary.from_row(row),
                similarity=self.scorer.similarity(query, candidate),
                distance=self.scorer.distance(query, candidate),
            ))
        matches.sort(key=lambda m: m.similarity, reverse=True)

        logger.info(f"结构化检索: 共 {results['count']} 条，本页 {len(matches)} 条")
        return self._build_result(query, matches, results['count'], options, start_time, SOURCE_STRUCTURED)

    @staticmethod
    def _build_result(query: NormalizedAddress, matches: List[MatchResult], total_found: int,
                      options: SearchOptions, start_time: float, source: str) -> SearchResult:
        processing_time_ms = round((time.time() - start_time) * 1000, 2)
        logger.debug(f"检索完成 ({source})，耗时 {processing_time_ms}ms")
        return SearchResult(
            normalized_address=query,
            matches=matches,
            metadata=SearchMetadata(
                total_found=total_found,
                search_radius=options.search_radius,
                processing_time_ms=processing_time_ms,
                page=options.page,
                limit=options.limit,
                has_next_page=options.page * options.limit < total_found,
                has_prev_page=options.page > 1,
                source=source,
            ),
        )
