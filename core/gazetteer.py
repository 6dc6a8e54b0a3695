#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# @Time    : 2026/10/12 10:12
# @Author  : hejun
"""
地名库
市、省、道路类型别名与象限词，启动时加载一次后只读
"""
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional, Tuple, Union

from config.config import Config
from utils.file_utils import FileUtils


@dataclass(frozen=True)
class Gazetteer:
    """只读地名库"""

    municipalities: Tuple[str, ...] = ()
    departments: Tuple[str, ...] = ()
    quadrants: Tuple[str, ...] = ()
    # 规范代码 -> 可能出现在原始数据中的所有写法
    via_aliases: Dict[str, Tuple[str, ...]] = field(default_factory=dict)

    def __post_init__(self):
        lookup = {}
        for code, aliases in self.via_aliases.items():
            for alias in aliases:
                lookup.setdefault(alias, code)
            lookup.setdefault(code, code)
        object.__setattr__(self, '_alias_lookup', lookup)

    def canonical_via(self, token: str) -> str:
        """道路类型写法 -> 规范代码；未知写法原样返回"""
        token = token.lower()
        return self._alias_lookup.get(token, token)

    def equivalents(self, via_code: str) -> Tuple[str, ...]:
        """规范代码 -> 全部别名（含自身）"""
        via_code = via_code.lower()
        return self.via_aliases.get(via_code, (via_code,))

    def find_municipality(self, text: str) -> Optional[str]:
        return next((m for m in self.municipalities if m in text), None)

    def find_department(self, text: str) -> Optional[str]:
        return next((d for d in self.departments if d in text), None)


def load_gazetteer(path: Union[str, Path, None] = None) -> Gazetteer:
    """
    从JSON加载地名库

    Args:
        path: 文件路径，None 使用 config/gazetteers.json

    Returns:
        Gazetteer 实例
    """
    data = FileUtils.read_json(path or Config.GAZETTEER_PATH)
    return Gazetteer(
        municipalities=tuple(data.get('municipalities', [])),
        departments=tuple(data.get('departments', [])),
        quadrants=tuple(data.get('quadrants', [])),
        via_aliases={code: tuple(aliases) for code, aliases in data.get('via_aliases', {}).items()},
    )
