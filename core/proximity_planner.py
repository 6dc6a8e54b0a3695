#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# @Time    : 2026/10/12 14:03
# @Author  : hejun
"""
邻近检索条件构建模块
根据结构化地址生成范围/别名过滤表达式，本身不执行查询
"""
from typing import Any, Dict, Iterable, List, Optional

from core.address_normalizer import first_number
from core.filter_expression import (
    MATCH_ALL, MATCH_NONE, Eq, FilterExpression, Like, Range, and_, describe, or_,
)
from core.gazetteer import Gazetteer, load_gazetteer
from core.models import MatchCriterion, NormalizedAddress, SearchOptions
from utils.logger import setup_logging

# 初始化日志记录器
logger = setup_logging('proximity_planner').get_logger()

POLICY_MATCH_ALL = 'match_all'
POLICY_MATCH_NONE = 'match_none'


class ProximityQueryPlanner:
    """邻近检索条件构建器"""

    def __init__(self, gazetteer: Optional[Gazetteer] = None, config: Dict[str, Any] = None):
        self.config = config or {}
        self.gazetteer = gazetteer or load_gazetteer()
        self.empty_policy = self.config.get('empty_predicate_policy', POLICY_MATCH_ALL)
        if self.empty_policy not in (POLICY_MATCH_ALL, POLICY_MATCH_NONE):
            raise ValueError(f"未知的空条件策略: {self.empty_policy}")
        self.similar_number_range = self.config.get('similar_number_range', 5)

    def build_predicate(self, query: NormalizedAddress, options: SearchOptions) -> FilterExpression:
        """
        构建邻近检索条件

        顶层为各邻近子句的 OR；市/省作为前置条件在 OR 组之外 AND。

        Args:
            query: 解析后的查询地址
            options: 检索参数

        Returns:
            过滤表达式
        """
        proximity = self.build_proximity_clauses(query, options)

        if proximity:
            proximity_group = or_(*proximity)
        elif self.empty_policy == POLICY_MATCH_ALL:
            logger.info("查询地址没有可用的邻近字段，按策略匹配全部记录")
            proximity_group = MATCH_ALL
        else:
            logger.info("查询地址没有可用的邻近字段，按策略不返回任何记录")
            proximity_group = MATCH_NONE

        region = self.build_region_clauses(query)
        predicate = and_(*region, proximity_group) if region else proximity_group

        logger.debug(f"邻近检索条件: {describe(predicate)}")
        return predicate

    def build_proximity_clauses(self, query: NormalizedAddress,
                                options: SearchOptions) -> List[FilterExpression]:
        clauses: List[FilterExpression] = []
        radius = options.search_radius

        # 道路类型（含别名）+ 主门牌号范围
        if query.via_code is not None and query.primary_number is not None:
            clauses.append(and_(
                self.via_code_clause(query.via_code),
                Range('primary_number', query.primary_number - radius, query.primary_number + radius),
            ))

        if options.include_neighborhoods and query.neighborhood is not None:
            clauses.append(Like('neighborhood', query.neighborhood))

        if options.include_quadrants and query.quadrant is not None:
            clauses.append(Eq('quadrant', query.quadrant))

        # 道路编号数字部分，半径减半（向下取整）
        via_number = first_number(query.via_label)
        if via_number is not None:
            half = radius // 2
            clauses.append(Range('via_label', via_number - half, via_number + half, digits_only=True))

        return clauses

    @staticmethod
    def build_region_clauses(query: NormalizedAddress) -> List[FilterExpression]:
        clauses: List[FilterExpression] = []
        if query.municipality is not None:
            clauses.append(Eq('municipality', query.municipality))
        if query.department is not None:
            clauses.append(Eq('department', query.department))
        return clauses

    def via_code_clause(self, via_code: str) -> FilterExpression:
        """存储中的道路类型可能未规范化，展开为所有别名"""
        return or_(*(Eq('via_code', alias) for alias in self.gazetteer.equivalents(via_code)))

    def build_similarity_filter(self, target: NormalizedAddress,
                                criteria: Iterable[Any]) -> Optional[FilterExpression]:
        """
        按条件构建相似地址过滤（各条件 AND）

        Args:
            target: 目标地址
            criteria: MatchCriterion 集合（也接受对应字符串）

        Returns:
            过滤表达式；没有任何条件生效时返回 None
        """
        criteria = {MatchCriterion(c) for c in criteria}
        clauses: List[FilterExpression] = []

        if MatchCriterion.VIA_CODE in criteria and target.via_code is not None:
            clauses.append(Eq('via_code', target.via_code))

        if MatchCriterion.NEIGHBORHOOD in criteria and target.neighborhood is not None:
            clauses.append(Eq('neighborhood', target.neighborhood))

        if MatchCriterion.QUADRANT in criteria and target.quadrant is not None:
            clauses.append(Eq('quadrant', target.quadrant))

        if MatchCriterion.MUNICIPALITY in criteria and target.municipality is not None:
            clauses.append(Eq('municipality', target.municipality))

        if MatchCriterion.NUMBER_RANGE in criteria and target.primary_number is not None:
            spread = self.similar_number_range
            clauses.append(Range('primary_number', target.primary_number - spread,
                                 target.primary_number + spread))

        if not clauses:
            return None
        return and_(*clauses)
