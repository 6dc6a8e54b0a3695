#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# @Time    : 2026/10/13 10:45
# @Author  : hejun
"""
向量索引模块
Qdrant 集合封装（余弦距离）与内存实现，统一返回 VectorHit
"""
import uuid
from typing import Any, Dict, List, Optional

import numpy as np
from qdrant_client import QdrantClient
from qdrant_client.models import (
    Distance, FieldCondition, Filter, MatchValue, PointIdsList, PointStruct, VectorParams,
)

from core.exceptions import ProviderUnavailable
from core.models import VectorHit
from utils.logger import setup_logging

# 初始化日志记录器
logger = setup_logging('vector_index').get_logger()

PROVIDER_NAME = 'vector_index'


def point_id(address_id: str) -> str:
    """Qdrant 点 id 只能是整数或 UUID，由地址 id 稳定生成"""
    return str(uuid.uuid5(uuid.NAMESPACE_URL, f"address:{address_id}"))


def _region_filter(municipality: Optional[str], neighborhood: Optional[str]) -> Dict[str, str]:
    region = {}
    if municipality:
        region['municipality'] = municipality
    if neighborhood:
        region['neighborhood'] = neighborhood
    return region


class QdrantVectorIndex:
    """Qdrant 向量索引"""

    def __init__(self, config: Dict[str, Any] = None, client: Optional[QdrantClient] = None):
        self.config = config or {}
        self.collection_name = self.config.get('collection_name', 'hability-addresses')

        if client is None:
            if self.config.get('url'):
                client = QdrantClient(url=self.config['url'],
                                      api_key=self.config.get('api_key'),
                                      timeout=self.config.get('request_timeout', 15))
            elif self.config.get('path'):
                client = QdrantClient(path=self.config['path'])
            else:
                raise ProviderUnavailable(PROVIDER_NAME, "未配置 QDRANT_URL 或 QDRANT_PATH")
        self.client = client

    def ensure_collection(self, dimension: int = 768):
        """集合不存在时创建"""
        if self.client.collection_exists(self.collection_name):
            logger.info(f"集合 {self.collection_name} 已存在")
            return
        self.client.create_collection(
            collection_name=self.collection_name,
            vectors_config=VectorParams(size=dimension, distance=Distance.COSINE),
        )
        logger.info(f"集合 {self.collection_name} 创建成功 ({dimension} 维)")

    def upsert(self, records: List[Dict[str, Any]]):
        """
        插入或更新向量

        Args:
            records: [{'id': 地址id, 'values': 向量, 'metadata': 元数据}]
        """
        if not records:
            return
        points = []
        for record in records:
            payload = dict(record.get('metadata') or {})
            payload['id'] = str(record['id'])
            points.append(PointStruct(id=point_id(record['id']), vector=list(record['values']),
                                      payload=payload))
        self.client.upsert(collection_name=self.collection_name, points=points)
        logger.debug(f"写入 {len(points)} 个向量")

    def query(self, vector: List[float], top_k: int, min_score: float,
              municipality: Optional[str] = None,
              neighborhood: Optional[str] = None) -> List[VectorHit]:
        """
        相似向量检索，得分降序

        Args:
            vector: 查询向量
            top_k: 召回数量
            min_score: 最低余弦得分
            municipality: 按市过滤（可选）
            neighborhood: 按社区过滤（可选）

        Returns:
            VectorHit 列表
        """
        region = _region_filter(municipality, neighborhood)
        query_filter = None
        if region:
            query_filter = Filter(must=[
                FieldCondition(key=key, match=MatchValue(value=value))
                for key, value in region.items()
            ])

        points = self.client.query_points(
            collection_name=self.collection_name,
            query=list(vector),
            query_filter=query_filter,
            limit=top_k,
            score_threshold=min_score,
            with_payload=True,
        ).points

        hits = [VectorHit(id=str(p.id), score=float(p.score), metadata=dict(p.payload or {}))
                for p in points]
        logger.debug(f"向量检索: topK={top_k}, minScore={min_score}, 命中 {len(hits)}")
        return hits

    def delete(self, ids: List[str]):
        if not ids:
            return
        self.client.delete(collection_name=self.collection_name,
                           points_selector=PointIdsList(points=[point_id(i) for i in ids]))

    def clear(self, dimension: int = 768):
        """删除集合中全部向量（重建集合）"""
        if self.client.collection_exists(self.collection_name):
            self.client.delete_collection(self.collection_name)
        self.ensure_collection(dimension)
        logger.info(f"集合 {self.collection_name} 已清空")

    def stats(self) -> Dict[str, Any]:
        info = self.client.get_collection(self.collection_name)
        return {
            'collection': self.collection_name,
            'points_count': info.points_count,
            'status': str(info.status),
        }


class InMemoryVectorIndex:
    """内存向量索引（暴力余弦检索），用于本地调试与测试"""

    def __init__(self):
        self._vectors: Dict[str, np.ndarray] = {}
        self._metadata: Dict[str, Dict[str, Any]] = {}

    def ensure_collection(self, dimension: int = 768):
        return None

    def upsert(self, records: List[Dict[str, Any]]):
        for record in records:
            address_id = str(record['id'])
            vector = np.asarray(record['values'], dtype=float)
            norm = np.linalg.norm(vector)
            self._vectors[address_id] = vector / norm if norm else vector
            payload = dict(record.get('metadata') or {})
            payload['id'] = address_id
            self._metadata[address_id] = payload

    def query(self, vector: List[float], top_k: int, min_score: float,
              municipality: Optional[str] = None,
              neighborhood: Optional[str] = None) -> List[VectorHit]:
        if not self._vectors:
            return []
        query = np.asarray(vector, dtype=float)
        norm = np.linalg.norm(query)
        if norm == 0:
            return []
        query = query / norm

        region = _region_filter(municipality, neighborhood)
        hits = []
        for address_id, stored in self._vectors.items():
            metadata = self._metadata[address_id]
            if any(metadata.get(key) != value for key, value in region.items()):
                continue
            score = float(np.dot(stored, query))
            if score >= min_score:
                hits.append(VectorHit(id=address_id, score=score, metadata=dict(metadata)))

        hits.sort(key=lambda h: h.score, reverse=True)
        return hits[:top_k]

    def delete(self, ids: List[str]):
        for address_id in ids:
            self._vectors.pop(str(address_id), None)
            self._metadata.pop(str(address_id), None)

    def clear(self, dimension: int = 768):
        self._vectors.clear()
        self._metadata.clear()

    def stats(self) -> Dict[str, Any]:
        return {'collection': 'memory', 'points_count': len(self._vectors), 'status': 'green'}
