#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# @Time    : 2026/10/12 10:05
# @Author  : hejun
"""
检索异常定义

解析失败不是异常：解析器总是返回（可能不完整的）结构化地址。
"""
from typing import Optional


class AddressSearchError(Exception):
    """地址检索异常基类"""


class ProviderUnavailable(AddressSearchError):
    """外部服务（向量化、向量索引、存储）未配置或不可达"""

    def __init__(self, provider: str, message: str = ''):
        self.provider = provider
        super().__init__(f"{provider} 不可用: {message}" if message else f"{provider} 不可用")


class ProviderTimeout(AddressSearchError):
    """外部服务调用超时"""

    def __init__(self, provider: str, timeout: Optional[float] = None):
        self.provider = provider
        self.timeout = timeout
        super().__init__(f"{provider} 调用超时 ({timeout}s)")


class QueryInvalid(AddressSearchError):
    """查询参数非法，在任何 I/O 之前拒绝"""


class CombinedSearchFailure(AddressSearchError):
    """语义检索与结构化检索均失败"""

    def __init__(self, semantic_error: Exception, structured_error: Exception):
        self.semantic_error = semantic_error
        self.structured_error = structured_error
        super().__init__(
            f"语义检索失败: {semantic_error}; 结构化检索失败: {structured_error}"
        )
