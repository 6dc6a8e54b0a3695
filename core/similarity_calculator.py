#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# @Time    : 2026/10/12 11:20
# @Author  : hejun
"""
结构化地址相似度计算模块
加权打分相似度 + 门牌距离启发值
"""
from typing import Any, Dict, Optional

from core.address_normalizer import first_number
from core.models import NormalizedAddress

DEFAULT_WEIGHTS = {
    'via_code': 3,
    'via_label': 2,
    'primary_number': 2,
    'neighborhood': 2,
    'municipality': 1,
}


def _both_present(a: Any, b: Any) -> bool:
    return a is not None and b is not None


def _equal(a: Any, b: Any) -> bool:
    """缺失按不匹配计，两边都缺失也不算相等"""
    return _both_present(a, b) and a == b


class SimilarityScorer:
    """地址相似度计算器"""

    def __init__(self, config: Dict[str, Any] = None):
        self.config = config or {}

        # 权重配置，未给出的项沿用默认值
        self.weights = {**DEFAULT_WEIGHTS, **self.config.get('weights', {})}
        self.primary_tolerance = self.config.get('primary_number_tolerance', 2)
        self.total_weight = sum(self.weights.values())

    def similarity(self, a: NormalizedAddress, b: NormalizedAddress) -> float:
        """
        计算相似度，对称，取值 [0, 1]

        Args:
            a: 地址1
            b: 地址2

        Returns:
            得分 / 总权重
        """
        if self.total_weight <= 0:
            return 0.0

        score = 0.0

        # 1. 道路类型
        if _equal(a.via_code, b.via_code):
            score += self.weights['via_code']

        # 2. 道路编号
        if _equal(a.via_label, b.via_label):
            score += self.weights['via_label']

        # 3. 主门牌号：相等满分，差值在容差内得一半
        if _both_present(a.primary_number, b.primary_number):
            diff = abs(a.primary_number - b.primary_number)
            if diff == 0:
                score += self.weights['primary_number']
            elif diff <= self.primary_tolerance:
                score += self.weights['primary_number'] / 2

        # 4. 社区
        if _equal(a.neighborhood, b.neighborhood):
            score += self.weights['neighborhood']

        # 5. 市
        if _equal(a.municipality, b.municipality):
            score += self.weights['municipality']

        return score / self.total_weight

    def distance(self, a: NormalizedAddress, b: NormalizedAddress) -> float:
        """
        门牌距离启发值（不满足三角不等式，只用于排序）

        |主号差| + 0.1 * |副号差| + 0.5 * |道路编号数字差|，缺失项不计
        """
        distance = 0.0

        if _both_present(a.primary_number, b.primary_number):
            distance += abs(a.primary_number - b.primary_number)

        if _both_present(a.secondary_number, b.secondary_number):
            distance += abs(a.secondary_number - b.secondary_number) * 0.1

        distance += self._via_distance(a.via_label, b.via_label)

        return distance

    @staticmethod
    def _via_distance(label_a: Optional[str], label_b: Optional[str]) -> float:
        num_a = first_number(label_a)
        num_b = first_number(label_b)
        if num_a is None or num_b is None:
            return 0.0
        return abs(num_a - num_b) * 0.5
