#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# @Time    : 2026/10/12 11:45
# @Author  : hejun
"""
与存储无关的过滤表达式树
Eq | Range | Like | And | Or，由各存储适配器自行解释
"""
import re
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Tuple, Union

from core.models import clean_value, to_number

_NON_DIGITS = re.compile(r'\D')


@dataclass(frozen=True)
class Eq:
    field: str
    value: Any


@dataclass(frozen=True)
class Range:
    """闭区间；digits_only 时先去掉存储值中的全部非数字字符（无数字则不匹配）"""

    field: str
    low: float
    high: float
    digits_only: bool = False


@dataclass(frozen=True)
class Like:
    """不区分大小写的子串匹配"""

    field: str
    substring: str


@dataclass(frozen=True)
class And:
    clauses: Tuple['FilterExpression', ...] = ()


@dataclass(frozen=True)
class Or:
    clauses: Tuple['FilterExpression', ...] = ()


FilterExpression = Union[Eq, Range, Like, And, Or]

# 空 And 恒真，空 Or 恒假
MATCH_ALL = And(())
MATCH_NONE = Or(())


def and_(*clauses: FilterExpression) -> FilterExpression:
    """组合 And，单个子句时直接返回该子句"""
    return clauses[0] if len(clauses) == 1 else And(tuple(clauses))


def or_(*clauses: FilterExpression) -> FilterExpression:
    return clauses[0] if len(clauses) == 1 else Or(tuple(clauses))


def digits_of(value: Any) -> Optional[int]:
    """存储值去掉非数字后的整数，如 "152b" -> 152；无数字返回 None"""
    value = clean_value(value)
    if value is None:
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        value = to_number(value)
    digits = _NON_DIGITS.sub('', str(value))
    return int(digits) if digits else None


def matches(expr: FilterExpression, row: Mapping[str, Any]) -> bool:
    """
    在内存中对单行求值，语义与 SQL / pandas 适配器一致

    Args:
        expr: 过滤表达式
        row: 字段名 -> 值

    Returns:
        是否满足
    """
    if isinstance(expr, And):
        return all(matches(clause, row) for clause in expr.clauses)
    if isinstance(expr, Or):
        return any(matches(clause, row) for clause in expr.clauses)

    value = clean_value(row.get(expr.field))

    if isinstance(expr, Eq):
        return value is not None and value == expr.value
    if isinstance(expr, Range):
        number = digits_of(value) if expr.digits_only else to_number(value)
        return number is not None and expr.low <= number <= expr.high
    if isinstance(expr, Like):
        return value is not None and expr.substring.lower() in str(value).lower()

    raise TypeError(f"未知的过滤表达式: {expr!r}")


def describe(expr: FilterExpression) -> str:
    """可读形式，用于日志"""
    if isinstance(expr, And):
        if not expr.clauses:
            return 'TRUE'
        return '(' + ' AND '.join(describe(c) for c in expr.clauses) + ')'
    if isinstance(expr, Or):
        if not expr.clauses:
            return 'FALSE'
        return '(' + ' OR '.join(describe(c) for c in expr.clauses) + ')'
    if isinstance(expr, Eq):
        return f"{expr.field} = {expr.value!r}"
    if isinstance(expr, Range):
        field = f"digits({expr.field})" if expr.digits_only else expr.field
        return f"{field} BETWEEN {expr.low} AND {expr.high}"
    if isinstance(expr, Like):
        return f"{expr.field} ILIKE '%{expr.substring}%'"
    raise TypeError(f"未知的过滤表达式: {expr!r}")
