#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# @Time    : 2026/10/14 16:10
# @Author  : hejun
"""
道路地址邻近检索系统
"""

from core.address_normalizer import AddressParser, AddressStandardizationPipeline
from core.similarity_calculator import SimilarityScorer
from core.proximity_planner import ProximityQueryPlanner
from core.search_orchestrator import SearchOrchestrator
from core.vector_migration import VectorMigrationService
from utils.db_handler import DatabaseHandler
from utils.dataframe_store import DataFrameAddressStore

__version__ = '1.0.0'
__author__ = 'Via Address Search'

__all__ = [
    'AddressParser',
    'AddressStandardizationPipeline',
    'SimilarityScorer',
    'ProximityQueryPlanner',
    'SearchOrchestrator',
    'VectorMigrationService',
    'DatabaseHandler',
    'DataFrameAddressStore',
]
