# main.py
# !/usr/bin/env python3
# -*- coding: utf-8 -*-
# ****************************************************************#
# @Time    : 2026/10/14 15:30
# @Author  : JonHe
# Function : 命令行入口
# ****************************************************************#
"""
道路地址邻近检索主程序
支持解析、检索、相似地址查询、批量标准化、入库与向量迁移
"""
import sys
from pathlib import Path

# 添加项目根目录到Python路径
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))
import argparse
import json
import time
from typing import Any, Optional

from config.config import Config
from core.address_normalizer import AddressParser, AddressStandardizationPipeline
from core.embedding_provider import ReplicateEmbeddingProvider
from core.exceptions import AddressSearchError, ProviderUnavailable
from core.gazetteer import load_gazetteer
from core.models import MatchCriterion, SearchOptions
from core.search_orchestrator import SearchOrchestrator
from core.vector_index import QdrantVectorIndex
from core.vector_migration import VectorMigrationService
from utils.dataframe_store import DataFrameAddressStore
from utils.db_handler import DatabaseHandler
from utils.file_utils import FileUtils
from utils.logger import setup_logging

# 初始化日志记录器
logger = setup_logging('main').get_logger()


def print_json(data: Any):
    print(json.dumps(data, ensure_ascii=False, indent=2, default=str))


class ViaAddressSearchSystem:
    """道路地址检索系统（组装各组件）"""

    def __init__(self, csv_path: Optional[str] = None):
        normalization_config = Config.ALGORITHM_CONFIG.get('normalization', {})
        self.gazetteer = load_gazetteer(normalization_config.get('gazetteer_path'))
        self.parser = AddressParser(self.gazetteer, normalization_config)

        if csv_path:
            self.storage = DataFrameAddressStore.from_csv(csv_path)
            self.db_handler = None
        else:
            self.db_handler = DatabaseHandler(Config.DATABASE_CONFIG)
            self.storage = self.db_handler

        self.embedding_provider = ReplicateEmbeddingProvider(Config.EMBEDDING_CONFIG)
        self.vector_index = self._build_vector_index()
        self._orchestrator = None

    @staticmethod
    def _build_vector_index():
        try:
            return QdrantVectorIndex(Config.VECTOR_INDEX_CONFIG)
        except ProviderUnavailable as e:
            logger.warning(f"向量索引不可用，检索将直接使用结构化方式: {e}")
            return None

    def connect_database(self):
        """连接数据库"""
        if self.db_handler is not None:
            self.db_handler.connect()

    @property
    def orchestrator(self) -> SearchOrchestrator:
        if self._orchestrator is None:
            embedding = self.embedding_provider if self.embedding_provider.is_configured() else None
            self._orchestrator = SearchOrchestrator(
                storage=self.storage,
                parser=self.parser,
                embedding_provider=embedding,
                vector_index=self.vector_index,
                config=Config.ALGORITHM_CONFIG,
            )
        return self._orchestrator

    def close(self):
        """关闭系统"""
        if self.db_handler is not None:
            self.db_handler.disconnect()


def _search_options(args) -> SearchOptions:
    search_config = Config.ALGORITHM_CONFIG['search']
    return SearchOptions(
        search_radius=args.radius if args.radius is not None else search_config['default_radius'],
        include_neighborhoods=args.include_neighborhoods,
        include_quadrants=args.include_quadrants,
        page=args.page if args.page is not None else search_config['default_page'],
        limit=args.limit if args.limit is not None else search_config['default_limit'],
        municipality=args.municipality,
        neighborhood=args.neighborhood,
    )


def cmd_parse(system: ViaAddressSearchSystem, args):
    print_json(system.parser.parse(args.address).to_dict())


def cmd_search(system: ViaAddressSearchSystem, args):
    system.connect_database()
    result = system.orchestrator.search_nearby_addresses(args.address, _search_options(args))
    print_json(result.to_dict())


def cmd_similar(system: ViaAddressSearchSystem, args):
    system.connect_database()
    target = system.parser.parse(args.address)
    summaries = system.orchestrator.find_similar_addresses(target, args.criteria)
    print_json([vars(summary) for summary in summaries])


def cmd_normalize_file(system: ViaAddressSearchSystem, args):
    start_time = time.time()
    df = FileUtils.read_csv_with_autodetect(args.input)
    pipeline = AddressStandardizationPipeline(Config.ALGORITHM_CONFIG.get('normalization', {}),
                                              parser=system.parser)
    result = pipeline.process_dataframe(df, address_column=args.column)
    FileUtils.save_dataframe(result, args.output)
    logger.info(f"标准化结果已保存到 {args.output}，耗时: {time.time() - start_time:.2f}秒")


def cmd_import(system: ViaAddressSearchSystem, args):
    df = FileUtils.read_csv_with_autodetect(args.input)
    if 'id' not in df.columns:
        raise ValueError("导入文件缺少 id 列")
    pipeline = AddressStandardizationPipeline(Config.ALGORITHM_CONFIG.get('normalization', {}),
                                              parser=system.parser)
    result = pipeline.process_dataframe(df, address_column=args.column)
    if args.column != 'address_raw':
        result['address_raw'] = result[args.column]

    system.connect_database()
    system.db_handler.create_address_table()
    system.db_handler.save_addresses(result.to_dict('records'))


def cmd_migrate(system: ViaAddressSearchSystem, args):
    system.connect_database()
    service = VectorMigrationService(
        storage=system.storage,
        embedding_provider=system.embedding_provider,
        vector_index=system.vector_index,
        config=Config.ALGORITHM_CONFIG.get('migration', {}),
    )
    progress = service.migrate_all(batch_size=args.batch_size, max_retries=args.max_retries,
                                   test_mode=args.test_mode)
    print_json({'progress': progress.to_dict(), 'index': service.post_migration_stats()})


def cmd_init_db(system: ViaAddressSearchSystem, args):
    system.connect_database()
    system.db_handler.create_address_table()


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='道路地址邻近检索系统')
    parser.add_argument('--csv', help='使用 CSV 文件作为地址存储（不连接数据库）')
    parser.add_argument('--log-level', help='日志级别，如 DEBUG / INFO')
    parser.add_argument('--config', help='JSON 覆盖文件，按分区合并到算法配置')
    subparsers = parser.add_subparsers(dest='command', required=True)

    p = subparsers.add_parser('parse', help='解析单个地址')
    p.add_argument('address')
    p.set_defaults(func=cmd_parse)

    p = subparsers.add_parser('search', help='检索邻近地址')
    p.add_argument('address')
    p.add_argument('--radius', type=int, help='门牌号容差')
    p.add_argument('--page', type=int)
    p.add_argument('--limit', type=int)
    p.add_argument('--include-neighborhoods', action='store_true')
    p.add_argument('--include-quadrants', action='store_true')
    p.add_argument('--municipality', help='向量检索按市过滤')
    p.add_argument('--neighborhood', help='向量检索按社区过滤')
    p.set_defaults(func=cmd_search)

    p = subparsers.add_parser('similar', help='按匹配条件查找相似地址')
    p.add_argument('address')
    p.add_argument('--criteria', nargs='+', default=[],
                   choices=[c.value for c in MatchCriterion])
    p.set_defaults(func=cmd_similar)

    p = subparsers.add_parser('normalize-file', help='批量标准化 CSV 中的地址')
    p.add_argument('input')
    p.add_argument('output')
    p.add_argument('--column', default='address_raw', help='原始地址列名')
    p.set_defaults(func=cmd_normalize_file)

    p = subparsers.add_parser('import', help='标准化 CSV 并写入数据库')
    p.add_argument('input')
    p.add_argument('--column', default='address_raw', help='原始地址列名')
    p.set_defaults(func=cmd_import)

    p = subparsers.add_parser('migrate', help='把存储中的地址写入向量索引')
    p.add_argument('--batch-size', type=int)
    p.add_argument('--max-retries', type=int)
    p.add_argument('--test-mode', action='store_true', help='只处理前100条')
    p.set_defaults(func=cmd_migrate)

    p = subparsers.add_parser('init-db', help='创建地址表')
    p.set_defaults(func=cmd_init_db)

    return parser


def main(argv=None) -> int:
    """主函数"""
    args = build_arg_parser().parse_args(argv)
    if args.log_level:
        setup_logging('main', level=args.log_level)

    if args.config:
        try:
            Config.update_config(FileUtils.read_json(args.config))
        except (OSError, ValueError) as e:
            logger.error(f"配置文件加载失败: {e}")
            return 2

    if args.command in ('import', 'init-db') and args.csv:
        logger.error(f"{args.command} 只支持数据库存储")
        return 2

    # 创建系统实例
    system = ViaAddressSearchSystem(csv_path=args.csv)
    try:
        args.func(system, args)
        return 0
    except AddressSearchError as e:
        logger.error(f"检索失败: {e}")
        return 1
    except Exception as e:
        logger.error(f"处理过程中发生错误: {e}")
        return 1
    finally:
        # 关闭系统
        system.close()


if __name__ == "__main__":
    sys.exit(main())
