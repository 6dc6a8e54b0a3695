#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# @Time    : 2026/10/12 9:40
# @Author  : hejun
"""
系统配置文件
"""
import os
from pathlib import Path


class Config:
    """配置类"""

    # 项目路径
    PROJECT_ROOT = Path(__file__).parent.parent
    CONFIG_DIR = Path(__file__).parent

    # 地名库（市、省、道路别名、象限）
    GAZETTEER_PATH = CONFIG_DIR / "gazetteers.json"

    # 算法参数
    ALGORITHM_CONFIG = {
        # 相似度权重（总分固定为各项之和，缺失字段按不匹配计）
        'similarity': {
            'weights': {
                'via_code': 3,
                'via_label': 2,
                'primary_number': 2,
                'neighborhood': 2,
                'municipality': 1,
            },
            'primary_number_tolerance': 2,  # 门牌号差值<=2 得一半分
        },

        # 检索参数
        'search': {
            'default_radius': 5,  # 默认搜索半径（门牌号单位）
            'default_page': 1,
            'default_limit': 10,
            'max_limit': 100,  # 每页上限
            'top_k_multiplier': 3,  # 向量召回数量 = limit * 3
            'top_k_cap': 100,
            # (半径上限, 最低得分)，按顺序匹配
            'min_score_tiers': [(5, 0.8), (10, 0.7), (20, 0.6)],
            'min_score_floor': 0.5,
            # 查询地址没有任何可用字段时: match_all 返回全表, match_none 返回空
            'empty_predicate_policy': 'match_all',
            'similar_number_range': 5,
            'similar_result_cap': 100,
        },

        # 外部调用超时（秒）
        'timeouts': {
            'embedding': 30,
            'vector_index': 15,
            'storage': 15,
        },

        # 向量迁移
        'migration': {
            'batch_size': 50,
            'max_retries': 3,
            'base_delay_seconds': 1.0,  # 指数退避基数
            'batch_pause_seconds': 2.0,
            'test_mode_limit': 100,
        },

        # 地址标准化配置
        'normalization': {
            'n_jobs': 4,
            'gazetteer_path': None,  # None 使用默认地名库
        },
    }

    # 数据库配置（url 优先，否则按 MySQL 参数拼接）
    DATABASE_CONFIG = {
        'url': os.getenv('ADDRESS_DB_URL'),
        'host': os.getenv('ADDRESS_DB_HOST', 'localhost'),
        'port': int(os.getenv('ADDRESS_DB_PORT', '3306')),
        'user': os.getenv('ADDRESS_DB_USER', 'root'),
        'password': os.getenv('ADDRESS_DB_PASSWORD', ''),
        'database': os.getenv('ADDRESS_DB_NAME', 'hability'),
        'charset': 'utf8mb4',
        'table_name': 'addresses',
    }

    # 向量化服务（Replicate GTE-base）
    EMBEDDING_CONFIG = {
        'api_token': os.getenv('REPLICATE_API_TOKEN'),
        'api_url': 'https://api.replicate.com/v1/predictions',
        'model_version': 'd619cff29338b9a37c3d06605042e1ff0594a8c3eff0175fd6967f5643fc4d47',
        'dimension': 768,
        'batch_size': 5,
        'batch_pause_seconds': 0.5,
        'poll_interval_seconds': 0.5,
        'request_timeout': 30,
    }

    # 向量索引（Qdrant）
    VECTOR_INDEX_CONFIG = {
        'url': os.getenv('QDRANT_URL'),
        'api_key': os.getenv('QDRANT_API_KEY'),
        'path': os.getenv('QDRANT_PATH'),
        'collection_name': 'hability-addresses',
        'request_timeout': 15,
    }

    # 日志配置
    LOG_CONFIG = {
        'level': os.getenv('ADDRESS_LOG_LEVEL', 'INFO'),
        'log_dir': os.getenv('ADDRESS_LOG_DIR'),
    }

    @classmethod
    def update_config(cls, updates):
        """
        更新算法配置（--config 覆盖文件）

        分区内按键合并，未知分区抛 ValueError
        """
        if not isinstance(updates, dict):
            raise ValueError("配置覆盖必须是 JSON 对象")
        unknown = [key for key in updates if key not in cls.ALGORITHM_CONFIG]
        if unknown:
            raise ValueError(f"未知配置分区: {unknown}")
        for key, value in updates.items():
            if isinstance(value, dict) and isinstance(cls.ALGORITHM_CONFIG[key], dict):
                cls.ALGORITHM_CONFIG[key].update(value)
            else:
                cls.ALGORITHM_CONFIG[key] = value
