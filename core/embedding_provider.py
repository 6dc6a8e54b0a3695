#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# @Time    : 2026/10/13 9:30
# @Author  : hejun
"""
地址向量化模块
调用 Replicate 上的 GTE-base 模型生成 768 维向量，并提供向量化前的文本处理
"""
import re
import time
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

import numpy as np
import requests

from core.exceptions import ProviderTimeout, ProviderUnavailable
from core.models import clean_value, format_number
from utils.logger import setup_logging

# 初始化日志记录器
logger = setup_logging('embedding_provider').get_logger()

PROVIDER_NAME = 'embedding'

TERMINAL_STATUSES = ('succeeded', 'failed', 'canceled')

_WHITESPACE = re.compile(r'\s+')
_NON_ADDRESS_CHARS = re.compile(r'[^\w\s#\-áéíóúñüÁÉÍÓÚÑÜ]')

# 仅用于拼接向量化文本的缩写规则
_EMBEDDING_ABBREVIATIONS = (
    (re.compile(r'\bcalle\b'), 'cl'),
    (re.compile(r'\bcarrera\b'), 'kr'),
    (re.compile(r'\bavenida\b'), 'av'),
    (re.compile(r'\btransversal\b'), 'tv'),
    (re.compile(r'\bdiagonal\b'), 'dg'),
    (re.compile(r'\s+(?:no|num|numero)\s+'), ' # '),
)


def clean_address_for_embedding(raw: str) -> str:
    """轻度清洗：合并空白，去掉除 # - 和重音字母以外的符号，保留原始大小写"""
    text = _WHITESPACE.sub(' ', raw.strip())
    text = _NON_ADDRESS_CHARS.sub(' ', text)
    return _WHITESPACE.sub(' ', text).strip()


def normalize_address_for_embedding(raw: str) -> str:
    """小写并统一道路类型缩写与门牌连接词"""
    text = raw.lower().strip()
    for pattern, replacement in _EMBEDDING_ABBREVIATIONS:
        text = pattern.sub(replacement, text)
    return _WHITESPACE.sub(' ', text).strip()


def build_embedding_text(record: Mapping[str, Any]) -> str:
    """
    拼接一条地址记录的向量化文本，各部分用 " | " 分隔

    包含原始、规范化、标准地址的不同写法，结构化形式以及社区/市。

    Args:
        record: 地址记录（存储行或解析结果的字典）

    Returns:
        向量化文本
    """
    raw = clean_value(record.get('address_raw'))
    norm = clean_value(record.get('address_norm'))
    canonical = clean_value(record.get('address_canonical'))

    parts: List[str] = []
    if raw:
        parts.append(normalize_address_for_embedding(str(raw)))
    if norm and norm != raw:
        parts.append(normalize_address_for_embedding(str(norm)))
    if canonical and canonical not in (norm, raw):
        parts.append(normalize_address_for_embedding(str(canonical)))

    via_code = clean_value(record.get('via_code'))
    via_label = clean_value(record.get('via_label'))
    primary = clean_value(record.get('primary_number'))
    if via_code and via_label and primary:
        structured = f"{via_code} {via_label} {format_number(primary)}"
        secondary = clean_value(record.get('secondary_number'))
        if secondary:
            structured += f" {format_number(secondary)}"
        parts.append(structured)

    for key in ('neighborhood', 'municipality'):
        value = clean_value(record.get(key))
        if value:
            parts.append(str(value).lower())

    return ' | '.join(parts)


def cosine_similarity(vector_a: Sequence[float], vector_b: Sequence[float]) -> float:
    """余弦相似度，任一向量为零向量时返回0"""
    a = np.asarray(vector_a, dtype=float)
    b = np.asarray(vector_b, dtype=float)
    if a.shape != b.shape:
        raise ValueError("向量维度不一致")
    norm = np.linalg.norm(a) * np.linalg.norm(b)
    if norm == 0:
        return 0.0
    return float(np.dot(a, b) / norm)


class ReplicateEmbeddingProvider:
    """Replicate 向量化客户端（HTTP predictions 接口）"""

    def __init__(self, config: Dict[str, Any] = None,
                 session: Optional[requests.Session] = None,
                 sleep: Callable[[float], None] = time.sleep):
        self.config = config or {}
        self.api_token = self.config.get('api_token')
        self.api_url = self.config.get('api_url', 'https://api.replicate.com/v1/predictions')
        self.model_version = self.config.get('model_version')
        self.dimension = self.config.get('dimension', 768)
        self.batch_size = self.config.get('batch_size', 5)
        self.batch_pause = self.config.get('batch_pause_seconds', 0.5)
        self.poll_interval = self.config.get('poll_interval_seconds', 0.5)
        self.request_timeout = self.config.get('request_timeout', 30)
        self.session = session or requests.Session()
        self._sleep = sleep

    def is_configured(self) -> bool:
        return bool(self.api_token)

    def _headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_token}",
            "Prefer": "wait",
        }

    def embed(self, text: str) -> List[float]:
        """
        生成单条文本的向量

        Args:
            text: 地址文本（先做轻度清洗）

        Returns:
            向量

        Raises:
            ProviderUnavailable: 未配置 token、服务报错或返回格式异常
            ProviderTimeout: 请求或轮询超时
        """
        if not self.is_configured():
            raise ProviderUnavailable(PROVIDER_NAME, "REPLICATE_API_TOKEN 未配置")

        clean_text = clean_address_for_embedding(text)
        start_time = time.time()
        deadline = start_time + self.request_timeout
        payload = {"version": self.model_version, "input": {"text": clean_text}}

        try:
            response = self.session.post(self.api_url, headers=self._headers(), json=payload,
                                         timeout=self.request_timeout)
            response.raise_for_status()
            prediction = response.json()

            # Prefer: wait 下通常直接完成，否则轮询
            while prediction.get('status') not in TERMINAL_STATUSES:
                if time.time() >= deadline:
                    raise ProviderTimeout(PROVIDER_NAME, self.request_timeout)
                self._sleep(self.poll_interval)
                poll_url = (prediction.get('urls') or {}).get('get')
                if not poll_url:
                    raise ProviderUnavailable(PROVIDER_NAME, "预测结果缺少轮询地址")
                response = self.session.get(poll_url, headers=self._headers(),
                                            timeout=self.request_timeout)
                response.raise_for_status()
                prediction = response.json()

        except requests.exceptions.Timeout as e:
            raise ProviderTimeout(PROVIDER_NAME, self.request_timeout) from e
        except requests.exceptions.RequestException as e:
            raise ProviderUnavailable(PROVIDER_NAME, str(e)) from e

        if prediction.get('status') != 'succeeded':
            raise ProviderUnavailable(PROVIDER_NAME, f"预测失败: {prediction.get('error')}")

        vector = self._extract_vector(prediction.get('output'))
        elapsed_ms = (time.time() - start_time) * 1000
        logger.debug(f"向量生成完成，耗时 {elapsed_ms:.0f}ms ({len(vector)} 维): {clean_text!r}")
        return vector

    @staticmethod
    def _extract_vector(output: Any) -> List[float]:
        if isinstance(output, dict):
            output = output.get('vectors')
        if not isinstance(output, list) or not output:
            raise ProviderUnavailable(PROVIDER_NAME, "返回结果中没有向量")
        # 部分模型版本返回 [[...]]
        if isinstance(output[0], list):
            output = output[0]
        return [float(v) for v in output]

    def embed_batch(self, texts: List[str]) -> List[List[float]]:
        """
        分批生成向量，批次之间暂停以避免限流

        Args:
            texts: 文本列表

        Returns:
            与输入顺序一致的向量列表
        """
        vectors: List[List[float]] = []
        total_batches = (len(texts) + self.batch_size - 1) // self.batch_size

        for batch_start in range(0, len(texts), self.batch_size):
            batch = texts[batch_start:batch_start + self.batch_size]
            batch_number = batch_start // self.batch_size + 1
            logger.debug(f"向量化批次 {batch_number}/{total_batches} ({len(batch)} 条)")

            vectors.extend(self.embed(text) for text in batch)

            if batch_start + self.batch_size < len(texts):
                self._sleep(self.batch_pause)

        return vectors
