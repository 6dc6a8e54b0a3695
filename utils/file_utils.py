#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# @Time    : 2026/10/12 9:58
# @Author  : hejun
"""
文件处理工具函数
"""
import json
from pathlib import Path
from typing import Any, Union

import pandas as pd


class FileUtils:
    """文件处理工具类"""

    @staticmethod
    def ensure_directory(path: Union[str, Path]) -> Path:
        """确保目录存在"""
        path = Path(path)
        path.mkdir(parents=True, exist_ok=True)
        return path

    @staticmethod
    def read_json(filepath: Union[str, Path], encoding: str = 'utf-8') -> Any:
        """读取JSON文件"""
        with open(filepath, 'r', encoding=encoding) as f:
            return json.load(f)

    @staticmethod
    def read_csv_with_autodetect(filepath: Union[str, Path],
                                 **kwargs) -> pd.DataFrame:
        """自动检测编码读取CSV文件（地址数据常见 utf-8 / latin1 / cp1252）"""
        encodings = ['utf-8', 'utf-8-sig', 'cp1252', 'latin1']

        for encoding in encodings:
            try:
                return pd.read_csv(filepath, encoding=encoding, **kwargs)
            except (UnicodeDecodeError, pd.errors.ParserError):
                continue

        raise ValueError(f"无法解码文件: {filepath}")

    @staticmethod
    def save_dataframe(df: pd.DataFrame, filepath: Union[str, Path],
                       index: bool = False, **kwargs):
        """保存DataFrame到文件，自动选择格式"""
        filepath = Path(filepath)
        suffix = filepath.suffix.lower()
        FileUtils.ensure_directory(filepath.parent)

        if suffix == '.csv':
            df.to_csv(filepath, index=index, encoding='utf-8-sig', **kwargs)
        elif suffix == '.parquet':
            df.to_parquet(filepath, index=index, **kwargs)
        elif suffix == '.json':
            df.to_json(filepath, orient='records', force_ascii=False, **kwargs)
        elif suffix == '.xlsx' or suffix == '.xls':
            df.to_excel(filepath, index=index, **kwargs)
        else:
            raise ValueError(f"不支持的文件格式: {suffix}")
