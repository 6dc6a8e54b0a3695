#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# @Time    : 2026/10/12 10:41
# @Author  : hejun
"""
道路地址标准化模块
把自由文本地址（calle / carrera / avenida ...）解析为结构化地址

每个阶段都是按顺序排列的 (正则, 提取函数) 规则表，先匹配者胜出。
规则之间存在重叠，顺序不可调整。
"""
import re
import unicodedata
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Pattern, Tuple

import pandas as pd

from core.gazetteer import Gazetteer, load_gazetteer
from core.models import NORMALIZED_FIELDS, NormalizedAddress
from utils.logger import setup_logging

# 初始化日志记录器
logger = setup_logging('address_normalizer').get_logger()


@dataclass(frozen=True)
class ViaNumberRule:
    """门牌号组合规则：道路号、主号、副号在匹配中的分组位置"""

    name: str
    regex: Pattern
    via_group: int = 1
    primary_group: int = 2
    secondary_group: int = 3


# 阶段1：道路类型，组1为类型词
VIA_CODE_PATTERNS: Tuple[Pattern, ...] = (
    re.compile(r'\b(calle|cl|cll)\s+(\d+[a-z]*)'),
    re.compile(r'\b(carrera|cr|krr|carr|kr|k)\s+(\d+[a-z]*)'),
    re.compile(r'\b(avenida|av|avd|ac|ak)\s+(\d+[a-z]*)'),
    re.compile(r'\b(transversal|tv|trans)\s+(\d+[a-z]*)'),
    re.compile(r'\b(diagonal|dg|diag)\s+(\d+[a-z]*)'),
    re.compile(r'\b(autopista|ap)\s+(\d+[a-z]*)'),
    # 单字母 c，例如 "c 45"
    re.compile(r'\b(c)\s+(\d+[a-z\s]*)'),
)

# 阶段2：道路编号，组2为编号（独立再跑一遍，不复用阶段1的结果）
VIA_LABEL_PATTERNS: Tuple[Pattern, ...] = (
    re.compile(r'\b(calle|cl|cll|c)\s+(\d+[a-z]*)'),
    re.compile(r'\b(carrera|cr|krr|carr|kr|k)\s+(\d+[a-z]*)'),
    re.compile(r'\b(avenida|av|avd|ac|ak)\s+(\d+[a-z]*)'),
    re.compile(r'\b(transversal|tv|trans)\s+(\d+[a-z]*)'),
    re.compile(r'\b(diagonal|dg|diag)\s+(\d+[a-z]*)'),
    re.compile(r'\b(autopista|ap)\s+(\d+[a-z]*)'),
)

# 阶段3前置：公寓、内部、塔楼、车库、楼栋、楼宇、房屋、商铺、楼层、办公室编号不能当门牌号
QUALIFIER_PATTERNS: Tuple[Pattern, ...] = (
    re.compile(r'\b(?:apartment|ap|interior|in|tower|to|garage|gj|block|bl|bq|'
               r'edificio|ed|casa|ca|local|lc|piso|ps|oficina|of)\s+\d+'),
    re.compile(r'int\.\s*\d+'),
)

# 阶段3：门牌号组合规则
VIA_NUMBER_RULES: Tuple[ViaNumberRule, ...] = (
    # AC 68 SUR 70 70 -> 道路=68, 主号=70, 副号=70
    ViaNumberRule('avenida_quadrant',
                  re.compile(r'(?:ac|ak|av)\s+(\d+[a-z]*)\s+(?:sur|norte|este|oeste)?\s*(\d+)\s+(\d+)')),
    # DIAGONAL 80 # 7 - 100 -> 道路=80, 主号=7, 副号=100
    ViaNumberRule('diagonal_hash',
                  re.compile(r'(?:diagonal|dg|diag)\s+(\d+[a-z]*)\s*#\s*(\d+)(?:\s*-\s*(\d+))?')),
    # KR 19A 159 84 -> 道路=19a, 主号=159, 副号=84
    ViaNumberRule('carrera_spaced',
                  re.compile(r'(?:kr|carrera|cr|carr|k)\s+(\d+[a-z]*)\s+(\d+[a-z]*)\s+(\d+)')),
    # TV 65 59 21 SUR -> 道路=65, 主号=59, 副号=21
    ViaNumberRule('transversal_spaced',
                  re.compile(r'(?:tv|transversal|trans)\s+(\d+[a-z]*)\s+(\d+[a-z]*)\s+(\d+)')),
    # CL 152B 73 36 -> 道路=152b, 主号=73, 副号=36
    ViaNumberRule('calle_spaced',
                  re.compile(r'(?:cl|calle|cll|c)\s+(\d+[a-z]*)\s+(\d+[a-z]*)\s+(\d+)')),
    # KR 81 #55-30
    ViaNumberRule('generic_hash',
                  re.compile(r'(?:kr|cl|av|tv|dg|ac|ak|carrera|calle|avenida|transversal|diagonal|c|k)'
                             r'\s+(\d+[a-z]*)\s*#\s*(\d+)(?:[-\s]+(\d+))?')),
    # KR 81 55 30
    ViaNumberRule('generic_spaced',
                  re.compile(r'(?:kr|cl|av|tv|dg|ac|ak|carrera|calle|avenida|transversal|diagonal|c|k)'
                             r'\s+(\d+[a-z]*)\s+(\d+[a-z]*)(?:\s+(\d+))?')),
)

# 兜底：最多三组数字
FALLBACK_NUMBER_PATTERN = re.compile(r'\b(\d+)(?:[-\s]+(\d+))?(?:[-\s]+(\d+))?\b')

NEIGHBORHOOD_PATTERNS: Tuple[Pattern, ...] = (
    re.compile(r'\bbarrio\s+([a-záéíóúñü\s]+)'),
    re.compile(r'\bb\.\s+([a-záéíóúñü\s]+)'),
    re.compile(r'\bbrr\.\s+([a-záéíóúñü\s]+)'),
)

_DIGITS = re.compile(r'\d+')


def first_number(text: Optional[str]) -> Optional[int]:
    """取字符串中的第一段数字，如 "152b" -> 152"""
    if not text:
        return None
    match = _DIGITS.search(text)
    return int(match.group(0)) if match else None


class AddressParser:
    """道路地址解析器"""

    def __init__(self, gazetteer: Optional[Gazetteer] = None, config: Dict[str, Any] = None):
        self.config = config or {}
        if gazetteer is None:
            gazetteer = load_gazetteer(self.config.get('gazetteer_path'))
        self.gazetteer = gazetteer

        quadrant_words = sorted(self.gazetteer.quadrants, key=len, reverse=True)
        self.quadrant_pattern = re.compile(
            r'\b(' + '|'.join(map(re.escape, quadrant_words)) + r')\b'
        ) if quadrant_words else None

        # 单字段提取器（门牌号三个字段由 _extract_numbers 一次给出）
        self._field_extractors: List[Tuple[str, Callable[[str], Any]]] = [
            ('via_code', self._extract_via_code),
            ('via_label', self._extract_via_label),
            ('quadrant', self._extract_quadrant),
            ('neighborhood', self._extract_neighborhood),
            ('municipality', self.gazetteer.find_municipality),
            ('department', self.gazetteer.find_department),
        ]

    def parse(self, raw: Any) -> NormalizedAddress:
        """
        解析单个地址，永不抛异常，无法识别的字段留空

        Args:
            raw: 原始地址字符串

        Returns:
            NormalizedAddress
        """
        if not isinstance(raw, str) or not raw.strip():
            return NormalizedAddress()

        text = self._basic_clean(raw)
        fields: Dict[str, Any] = {name: extractor(text) for name, extractor in self._field_extractors}
        fields.update(self._extract_numbers(text))

        return NormalizedAddress(**fields)

    def _basic_clean(self, text: str) -> str:
        """基础清洗：全角转半角、去首尾空白、小写"""
        return unicodedata.normalize('NFKC', text).strip().lower()

    def _extract_via_code(self, text: str) -> Optional[str]:
        for pattern in VIA_CODE_PATTERNS:
            match = pattern.search(text)
            if match:
                return self.gazetteer.canonical_via(match.group(1))
        return None

    def _extract_via_label(self, text: str) -> Optional[str]:
        for pattern in VIA_LABEL_PATTERNS:
            match = pattern.search(text)
            if match:
                return match.group(2)
        return None

    def strip_qualifiers(self, text: str) -> str:
        for pattern in QUALIFIER_PATTERNS:
            text = pattern.sub('', text)
        return text

    def _extract_numbers(self, text: str) -> Dict[str, Any]:
        cleaned = self.strip_qualifiers(text)

        for rule in VIA_NUMBER_RULES:
            match = rule.regex.search(cleaned)
            if not match:
                continue
            via_number = first_number(match.group(rule.via_group))
            primary = first_number(match.group(rule.primary_group))
            secondary = first_number(match.group(rule.secondary_group))
            logger.debug(f"门牌号规则命中: {rule.name} -> {match.group(0)!r}")
            return {
                'primary_number': primary if primary is not None else via_number,
                'secondary_number': secondary,
                'tertiary_number': None,
            }

        match = FALLBACK_NUMBER_PATTERN.search(cleaned)
        if not match:
            return {}
        return {
            'primary_number': int(match.group(1)),
            'secondary_number': int(match.group(2)) if match.group(2) else None,
            'tertiary_number': int(match.group(3)) if match.group(3) else None,
        }

    def _extract_quadrant(self, text: str) -> Optional[str]:
        if self.quadrant_pattern is None:
            return None
        match = self.quadrant_pattern.search(text)
        return match.group(1) if match else None

    def _extract_neighborhood(self, text: str) -> Optional[str]:
        for pattern in NEIGHBORHOOD_PATTERNS:
            match = pattern.search(text)
            if match:
                return match.group(1).strip() or None
        return None

    def batch_normalize(self, addresses: List[str], n_jobs: int = 4) -> List[NormalizedAddress]:
        """批量解析地址"""
        from joblib import Parallel, delayed

        if n_jobs == 1 or len(addresses) < 1000:
            return [self.parse(addr) for addr in addresses]

        return Parallel(n_jobs=n_jobs)(
            delayed(self.parse)(addr)
            for addr in addresses
        )


class AddressStandardizationPipeline:
    """地址标准化管道（DataFrame 批处理，入库前使用）"""

    def __init__(self, config: Dict[str, Any] = None, parser: Optional[AddressParser] = None):
        self.config = config or {}
        self.parser = parser or AddressParser(config=self.config)

    def process_dataframe(self, df: pd.DataFrame, address_column: str = 'address_raw') -> pd.DataFrame:
        """
        解析地址列并追加结构化列（via_code 写入规范代码）

        Args:
            df: 输入数据
            address_column: 原始地址列名

        Returns:
            追加结构化列后的 DataFrame（新对象）
        """
        addresses = df[address_column].fillna('').astype(str).tolist()

        logger.info(f"开始标准化 {len(addresses)} 个地址...")
        results = self.parser.batch_normalize(
            addresses,
            n_jobs=self.config.get('n_jobs', 4)
        )

        parsed_df = pd.DataFrame(
            [{name: getattr(r, name) for name in NORMALIZED_FIELDS} for r in results],
            index=df.index,
            columns=list(NORMALIZED_FIELDS),
        )
        parsed_df['address_struct'] = [r.address_struct for r in results]

        result = df.copy()
        for col in parsed_df.columns:
            # 原数据已有的行政区划优先，解析结果只补空
            if col in result.columns and col in ('municipality', 'department', 'neighborhood'):
                result[col] = result[col].where(result[col].notna(), parsed_df[col])
            else:
                result[col] = parsed_df[col]

        parsed_count = sum(1 for r in results if r.via_code is not None)
        logger.info(f"地址标准化完成，识别出道路类型: {parsed_count}/{len(results)}")
        return result
