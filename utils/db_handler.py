#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# ****************************************************************#
# @Time    : 2026/10/12 15:40
# @Author  : JonHe
# Function : 地址存储读取（SQLAlchemy）
# ****************************************************************#
"""
数据库处理模块
把过滤表达式编译为 SQL，提供计数、分页读取、按 id 批量读取与入库
"""
import re
from typing import Any, Dict, Iterable, List, Optional, Sequence

from sqlalchemy import (
    Column, Float, Integer, MetaData, String, Table, Text, cast, create_engine, event,
    false, func, select, text, true,
)
from sqlalchemy import and_ as sql_and, or_ as sql_or
from sqlalchemy.exc import SQLAlchemyError
from tqdm import tqdm

from core.filter_expression import And, Eq, FilterExpression, Like, Or, Range
from core.models import clean_value
from utils.logger import setup_logging

# 初始化日志记录器
logger = setup_logging('db_handler').get_logger()


def build_address_table(table_name: str, metadata: MetaData) -> Table:
    """地址表结构，结构化列名与 NormalizedAddress 字段一致"""
    return Table(
        table_name, metadata,
        Column('id', String(64), primary_key=True),
        Column('address_raw', Text),
        Column('address_norm', Text),
        Column('address_canonical', Text),
        Column('address_struct', Text),
        Column('via_code', String(16), index=True),
        Column('via_label', String(32)),
        Column('primary_number', Float, index=True),
        Column('secondary_number', Float),
        Column('tertiary_number', Float),
        Column('quadrant', String(16)),
        Column('neighborhood', String(128)),
        Column('municipality', String(128), index=True),
        Column('department', String(128)),
        Column('transaction_value', Float),
        Column('private_area_m2', Float),
        Column('built_area_m2', Float),
    )


def _sqlite_regexp_replace(value, pattern, replacement):
    if value is None:
        return None
    return re.sub(pattern, replacement, str(value))


class DatabaseHandler:
    """数据库处理器"""

    def __init__(self, config: Dict[str, Any] = None):
        self.config = config or {}
        self.engine = None
        self.metadata = MetaData()
        self.table = build_address_table(self.config.get('table_name', 'addresses'), self.metadata)

    def _connection_string(self) -> str:
        if self.config.get('url'):
            return self.config['url']
        return (
            f"mysql+pymysql://{self.config['user']}:{self.config['password']}"
            f"@{self.config['host']}:{self.config['port']}/{self.config['database']}"
            f"?charset={self.config.get('charset', 'utf8mb4')}"
        )

    def connect(self):
        """建立数据库连接"""
        try:
            self.engine = create_engine(self._connection_string(), pool_pre_ping=True)

            if self.engine.dialect.name == 'sqlite':
                # SQLite 没有 regexp_replace，连接时注册
                @event.listens_for(self.engine, 'connect')
                def _register_functions(dbapi_connection, connection_record):
                    dbapi_connection.create_function('regexp_replace', 3, _sqlite_regexp_replace)

            # 测试连接
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            logger.info(f"成功连接到数据库: {self.engine.url.render_as_string(hide_password=True)}")
        except Exception as e:
            logger.error(f"数据库连接失败: {e}")
            raise

    def disconnect(self):
        """关闭数据库连接"""
        if self.engine:
            self.engine.dispose()
            self.engine = None
            logger.info("数据库连接已关闭")

    def _require_engine(self):
        if self.engine is None:
            self.connect()
        return self.engine

    def create_address_table(self):
        """创建地址表（已存在则跳过）"""
        try:
            self.metadata.create_all(self._require_engine(), tables=[self.table])
            logger.info(f"地址表 {self.table.name} 创建成功")
        except SQLAlchemyError as e:
            logger.error(f"创建地址表失败: {e}")
            raise

    # ------------------------------------------------------------------
    # 过滤表达式 -> SQL
    # ------------------------------------------------------------------

    def _digits_expression(self, column):
        """去掉全部非数字后转整数；没有数字时为 NULL（不参与比较）"""
        dialect = self._require_engine().dialect.name
        if dialect == 'postgresql':
            stripped = func.regexp_replace(column, '[^0-9]', '', 'g')
        else:
            stripped = func.regexp_replace(column, '[^0-9]', '')
        return cast(func.nullif(stripped, ''), Integer)

    def compile_filter(self, expr: FilterExpression):
        """
        把过滤表达式编译为 SQLAlchemy 条件

        Args:
            expr: 过滤表达式

        Returns:
            可用于 where() 的条件
        """
        if isinstance(expr, And):
            if not expr.clauses:
                return true()
            return sql_and(*(self.compile_filter(c) for c in expr.clauses))
        if isinstance(expr, Or):
            if not expr.clauses:
                return false()
            return sql_or(*(self.compile_filter(c) for c in expr.clauses))

        column = self.table.c[expr.field]

        if isinstance(expr, Eq):
            return column == expr.value
        if isinstance(expr, Range):
            target = self._digits_expression(column) if expr.digits_only else column
            return target.between(expr.low, expr.high)
        if isinstance(expr, Like):
            return func.lower(column).contains(expr.substring.lower(), autoescape=True)

        raise TypeError(f"未知的过滤表达式: {expr!r}")

    # ------------------------------------------------------------------
    # 读取
    # ------------------------------------------------------------------

    @staticmethod
    def _row_to_dict(row) -> Dict[str, Any]:
        return {key: clean_value(value) for key, value in row._mapping.items()}

    def count(self, expr: FilterExpression) -> int:
        """满足条件的记录总数"""
        stmt = select(func.count()).select_from(self.table).where(self.compile_filter(expr))
        with self._require_engine().connect() as conn:
            return int(conn.execute(stmt).scalar_one())

    def select(self, expr: FilterExpression, limit: int, offset: int = 0,
               projection: Optional[Sequence[str]] = None) -> List[Dict[str, Any]]:
        """
        按条件分页读取，按 id 升序

        Args:
            expr: 过滤表达式
            limit: 条数
            offset: 偏移量
            projection: 只读取这些列，None 读取全部

        Returns:
            记录列表
        """
        columns = [self.table.c[name] for name in projection] if projection else [self.table]
        stmt = (
            select(*columns)
            .where(self.compile_filter(expr))
            .order_by(self.table.c.id)
            .limit(limit)
            .offset(offset)
        )
        with self._require_engine().connect() as conn:
            return [self._row_to_dict(row) for row in conn.execute(stmt)]

    def select_by_ids(self, ids: Iterable[str]) -> List[Dict[str, Any]]:
        """按 id 批量读取，不存在的 id 直接忽略"""
        ids = [str(i) for i in ids]
        if not ids:
            return []
        stmt = select(self.table).where(self.table.c.id.in_(ids))
        with self._require_engine().connect() as conn:
            return [self._row_to_dict(row) for row in conn.execute(stmt)]

    # ------------------------------------------------------------------
    # 写入
    # ------------------------------------------------------------------

    def save_addresses(self, records: List[Dict[str, Any]], batch_size: int = 2000):
        """
        保存地址记录（按 id 覆盖）

        Args:
            records: 记录列表，未知字段忽略
            batch_size: 每批写入条数
        """
        if not records:
            logger.info("没有记录需要保存")
            return

        known = set(self.table.c.keys())
        rows = []
        for record in records:
            row = {key: clean_value(value) for key, value in record.items() if key in known}
            row['id'] = str(record['id'])
            for name in known:
                row.setdefault(name, None)
            rows.append(row)

        try:
            with self._require_engine().begin() as conn:  # 自动提交事务
                for i in tqdm(range(0, len(rows), batch_size), desc="保存数据"):
                    batch = rows[i:i + batch_size]
                    conn.execute(self.table.delete().where(
                        self.table.c.id.in_([row['id'] for row in batch])))
                    conn.execute(self.table.insert(), batch)
            logger.info(f"成功保存 {len(rows)} 条记录到表 {self.table.name}")
        except SQLAlchemyError as e:
            logger.error(f"保存记录失败: {e}")
            raise
