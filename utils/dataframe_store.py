#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# @Time    : 2026/10/12 16:25
# @Author  : hejun
"""
基于 pandas 的地址存储
CSV 导入后直接检索，接口与 DatabaseHandler 一致
"""
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

import pandas as pd

from core.filter_expression import And, Eq, FilterExpression, Like, Or, Range, digits_of
from core.models import clean_value
from utils.file_utils import FileUtils
from utils.logger import setup_logging

# 初始化日志记录器
logger = setup_logging('dataframe_store').get_logger()


class DataFrameAddressStore:
    """内存地址表"""

    def __init__(self, df: Optional[pd.DataFrame] = None):
        df = pd.DataFrame(columns=['id']) if df is None else df.copy()
        if 'id' not in df.columns:
            raise ValueError("地址数据缺少 id 列")
        df['id'] = df['id'].astype(str)
        self.df = df.sort_values('id', kind='stable').reset_index(drop=True)

    @classmethod
    def from_csv(cls, filepath: Union[str, Path], **kwargs) -> 'DataFrameAddressStore':
        df = FileUtils.read_csv_with_autodetect(filepath, **kwargs)
        logger.info(f"从 {filepath} 读取了 {len(df)} 条地址数据")
        return cls(df)

    def _column(self, name: str) -> pd.Series:
        if name in self.df.columns:
            return self.df[name]
        return pd.Series([None] * len(self.df), index=self.df.index, dtype=object)

    def compile_filter(self, expr: FilterExpression) -> pd.Series:
        """
        把过滤表达式编译为布尔掩码

        Args:
            expr: 过滤表达式

        Returns:
            与 self.df 行对齐的布尔 Series
        """
        if isinstance(expr, And):
            mask = pd.Series(True, index=self.df.index)
            for clause in expr.clauses:
                mask &= self.compile_filter(clause)
            return mask
        if isinstance(expr, Or):
            mask = pd.Series(False, index=self.df.index)
            for clause in expr.clauses:
                mask |= self.compile_filter(clause)
            return mask

        column = self._column(expr.field)

        if isinstance(expr, Eq):
            return (column == expr.value).fillna(False).astype(bool)
        if isinstance(expr, Range):
            if expr.digits_only:
                # CSV 中纯数字的道路编号会被读成浮点数，逐个取数字部分
                numbers = pd.to_numeric(column.map(digits_of), errors='coerce')
            else:
                numbers = pd.to_numeric(column, errors='coerce')
            return numbers.between(expr.low, expr.high).fillna(False).astype(bool)
        if isinstance(expr, Like):
            lowered = column.astype('string').str.lower()
            return lowered.str.contains(expr.substring.lower(), regex=False).fillna(False).astype(bool)

        raise TypeError(f"未知的过滤表达式: {expr!r}")

    @staticmethod
    def _to_records(df: pd.DataFrame) -> List[Dict[str, Any]]:
        records = df.astype(object).where(df.notna(), None).to_dict('records')
        return [{key: clean_value(value) for key, value in record.items()} for record in records]

    def count(self, expr: FilterExpression) -> int:
        return int(self.compile_filter(expr).sum())

    def select(self, expr: FilterExpression, limit: int, offset: int = 0,
               projection: Optional[Sequence[str]] = None) -> List[Dict[str, Any]]:
        """按条件分页读取，按 id 升序"""
        selected = self.df[self.compile_filter(expr)]
        if projection:
            selected = selected[[c for c in projection if c in selected.columns]]
        return self._to_records(selected.iloc[offset:offset + limit])

    def select_by_ids(self, ids: Iterable[str]) -> List[Dict[str, Any]]:
        ids = {str(i) for i in ids}
        return self._to_records(self.df[self.df['id'].isin(ids)])

    def save_addresses(self, records: List[Dict[str, Any]]):
        """追加记录，相同 id 覆盖"""
        if not records:
            return
        incoming = pd.DataFrame(records)
        incoming['id'] = incoming['id'].astype(str)
        kept = self.df[~self.df['id'].isin(incoming['id'])]
        merged = pd.concat([kept, incoming], ignore_index=True)
        self.df = merged.sort_values('id', kind='stable').reset_index(drop=True)
        logger.info(f"保存 {len(incoming)} 条记录，当前共 {len(self.df)} 条")
