#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# @Time    : 2026/10/12 10:20
# @Author  : hejun
"""
地址检索数据模型
"""
import math
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from core.exceptions import QueryInvalid

# 结构化字段（数据库列名与此一致）
NORMALIZED_FIELDS = (
    'via_code', 'via_label',
    'primary_number', 'secondary_number', 'tertiary_number',
    'quadrant', 'neighborhood', 'municipality', 'department',
)

SUMMARY_FIELDS = (
    'id', 'address_raw', 'address_norm', 'address_canonical',
    'municipality', 'neighborhood',
    'transaction_value', 'private_area_m2', 'built_area_m2',
)

# 旧版向量元数据使用驼峰命名
_METADATA_ALIASES = {
    'address_raw': 'addressRaw',
    'address_norm': 'addressNorm',
    'address_canonical': 'addressCanonical',
    'via_code': 'viaCode',
    'via_label': 'viaLabel',
    'primary_number': 'primaryNumber',
    'secondary_number': 'secondaryNumber',
    'transaction_value': 'transaction_value_cop',
}


def clean_value(value: Any) -> Any:
    """None / NaN / 空字符串统一视为缺失"""
    if value is None:
        return None
    if isinstance(value, float) and math.isnan(value):
        return None
    if isinstance(value, str) and not value.strip():
        return None
    return value


def to_number(value: Any) -> Optional[float]:
    """数据库里的门牌号可能是 double，整数值还原为 int"""
    value = clean_value(value)
    if value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number):
        return None
    return int(number) if number.is_integer() else number


def format_number(value: float) -> str:
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value)


def _metadata_value(metadata: Mapping[str, Any], key: str) -> Any:
    value = clean_value(metadata.get(key))
    if value is None and key in _METADATA_ALIASES:
        value = clean_value(metadata.get(_METADATA_ALIASES[key]))
    return value


@dataclass(frozen=True)
class NormalizedAddress:
    """结构化地址；每个字段独立可缺失"""

    via_code: Optional[str] = None
    via_label: Optional[str] = None
    primary_number: Optional[float] = None
    secondary_number: Optional[float] = None
    tertiary_number: Optional[float] = None
    quadrant: Optional[str] = None
    neighborhood: Optional[str] = None
    municipality: Optional[str] = None
    department: Optional[str] = None

    @property
    def address_struct(self) -> str:
        """规范地址串，如 "cl 152b #73 -36 Barrio cedritos bogotá" """
        parts = []

        if self.via_code is not None and self.via_label is not None:
            parts.append(f"{self.via_code} {self.via_label}")

        if self.primary_number is not None:
            parts.append(f"#{format_number(self.primary_number)}")
            if self.secondary_number is not None:
                parts.append(f"-{format_number(self.secondary_number)}")
                if self.tertiary_number is not None:
                    parts.append(f"-{format_number(self.tertiary_number)}")

        if self.neighborhood is not None:
            parts.append(f"Barrio {self.neighborhood}")

        if self.municipality is not None:
            parts.append(self.municipality)

        return ' '.join(parts)

    def is_empty(self) -> bool:
        return all(getattr(self, name) is None for name in NORMALIZED_FIELDS)

    def to_dict(self) -> Dict[str, Any]:
        data = {name: getattr(self, name) for name in NORMALIZED_FIELDS
                if getattr(self, name) is not None}
        data['address_struct'] = self.address_struct
        return data

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> 'NormalizedAddress':
        """从存储行（或向量元数据）还原结构化地址"""
        values = {}
        for name in NORMALIZED_FIELDS:
            value = _metadata_value(row, name)
            if name.endswith('_number'):
                value = to_number(value)
            elif value is not None:
                # CSV 缺值列会把 "81" 读成 81.0
                value = format_number(value)
            values[name] = value
        return cls(**values)


@dataclass
class AddressSummary:
    """存储记录的公开投影"""

    id: str
    address_raw: Optional[str] = None
    address_norm: Optional[str] = None
    address_canonical: Optional[str] = None
    municipality: Optional[str] = None
    neighborhood: Optional[str] = None
    transaction_value: Optional[float] = None
    private_area_m2: Optional[float] = None
    built_area_m2: Optional[float] = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> 'AddressSummary':
        return cls(
            id=str(row['id']),
            address_raw=clean_value(row.get('address_raw')),
            address_norm=clean_value(row.get('address_norm')),
            address_canonical=clean_value(row.get('address_canonical')),
            municipality=clean_value(row.get('municipality')),
            neighborhood=clean_value(row.get('neighborhood')),
            transaction_value=to_number(row.get('transaction_value')),
            private_area_m2=to_number(row.get('private_area_m2')),
            built_area_m2=to_number(row.get('built_area_m2')),
        )

    @classmethod
    def from_metadata(cls, metadata: Mapping[str, Any], address_id: str) -> 'AddressSummary':
        """存储中找不到时，用向量索引自带的元数据拼出最小摘要（面积不在元数据中）"""
        return cls(
            id=str(address_id),
            address_raw=_metadata_value(metadata, 'address_raw'),
            address_norm=_metadata_value(metadata, 'address_norm'),
            address_canonical=_metadata_value(metadata, 'address_canonical'),
            municipality=_metadata_value(metadata, 'municipality'),
            neighborhood=_metadata_value(metadata, 'neighborhood'),
            transaction_value=to_number(_metadata_value(metadata, 'transaction_value')),
        )


@dataclass
class MatchResult:
    address: AddressSummary
    similarity: float
    distance: float


@dataclass
class VectorHit:
    """向量索引返回的一条命中"""

    id: str
    score: float
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def address_id(self) -> str:
        """元数据中的 id 优先，其次 addressId，最后是索引点 id"""
        return str(self.metadata.get('id') or self.metadata.get('addressId') or self.id)


class MatchCriterion(str, Enum):
    """find_similar_addresses 的匹配条件"""

    VIA_CODE = 'via_code_match'
    NEIGHBORHOOD = 'neighborhood_match'
    QUADRANT = 'quadrant_match'
    NUMBER_RANGE = 'number_range_match'
    MUNICIPALITY = 'municipality_match'


@dataclass
class SearchOptions:
    """
    检索参数

    Attributes:
        search_radius: 门牌号容差（>=0）
        include_neighborhoods: 是否按社区名模糊匹配
        include_quadrants: 是否按象限匹配
        page: 页码，从1开始
        limit: 每页条数，1-100
        municipality: 向量检索的区域过滤（可选）
        neighborhood: 向量检索的区域过滤（可选）
    """

    search_radius: int = 5
    include_neighborhoods: bool = False
    include_quadrants: bool = False
    page: int = 1
    limit: int = 10
    municipality: Optional[str] = None
    neighborhood: Optional[str] = None

    def validate(self, max_limit: int = 100):
        if not isinstance(self.search_radius, int) or self.search_radius < 0:
            raise QueryInvalid(f"search_radius 必须是非负整数: {self.search_radius!r}")
        if not isinstance(self.page, int) or self.page < 1:
            raise QueryInvalid(f"page 必须大于0: {self.page!r}")
        if not isinstance(self.limit, int) or not 1 <= self.limit <= max_limit:
            raise QueryInvalid(f"limit 必须在 1-{max_limit} 之间: {self.limit!r}")

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


@dataclass
class SearchMetadata:
    total_found: int
    search_radius: int
    processing_time_ms: float
    page: int
    limit: int
    has_next_page: bool
    has_prev_page: bool
    # semantic: total_found 为召回候选数；structured: 为存储精确计数
    source: str = 'structured'


@dataclass
class SearchResult:
    normalized_address: NormalizedAddress
    matches: List[MatchResult]
    metadata: SearchMetadata

    def to_dict(self) -> Dict[str, Any]:
        return {
            'normalized_address': self.normalized_address.to_dict(),
            'matches': [asdict(match) for match in self.matches],
            'metadata': asdict(self.metadata),
        }
