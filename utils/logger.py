# !/usr/bin/env python3
# -*- coding: utf-8 -*-
# @Time    : 2026/10/12 9:52
# @Author  : hejun
"""
日志记录工具
"""
import logging
import sys
from pathlib import Path
from datetime import datetime
from typing import Optional, Union

from config.config import Config

# 所有模块日志挂在同一个根名称下
ROOT_LOGGER_NAME = 'via_address'


class ColoredFormatter(logging.Formatter):
    """彩色日志格式化器"""

    # ANSI颜色代码
    COLORS = {
        'DEBUG': '\033[36m',  # 青色
        'INFO': '\033[32m',  # 绿色
        'WARNING': '\033[33m',  # 黄色
        'ERROR': '\033[31m',  # 红色
        'CRITICAL': '\033[35m',  # 紫色
        'RESET': '\033[0m'  # 重置
    }

    def format(self, record):
        # 复制一份，避免颜色码污染其他处理器（文件、pytest caplog）
        record = logging.makeLogRecord(record.__dict__)
        if record.levelname in self.COLORS:
            record.levelname = f"{self.COLORS[record.levelname]}{record.levelname}{self.COLORS['RESET']}"
        return super().format(record)


def _resolve_level(level: Union[int, str, None]) -> int:
    if level is None:
        level = Config.LOG_CONFIG.get('level', 'INFO')
    if isinstance(level, str):
        return getattr(logging, level.upper(), logging.INFO)
    return level


class Logger:
    """日志记录器"""

    FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s - [%(lineno)d] %(message)s'
    DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

    def __init__(self, name: str = 'main',
                 log_dir: Optional[str] = None,
                 level: Union[int, str, None] = None,
                 console: bool = True):
        """
        初始化日志记录器

        处理器只挂在根记录器 via_address 上，各模块的子记录器向上传递，
        重复调用不会产生重复输出。

        Args:
            name: 模块名（会挂到 via_address 下）
            log_dir: 日志目录，None 表示使用 LOG_CONFIG 中的配置
            level: 日志级别
            console: 是否输出到控制台
        """
        level = _resolve_level(level)
        if log_dir is None:
            log_dir = Config.LOG_CONFIG.get('log_dir')

        self.root = logging.getLogger(ROOT_LOGGER_NAME)
        self.root.setLevel(level)
        self.logger = logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")
        self.log_file = None

        if console and not any(getattr(h, '_via_console', False) for h in self.root.handlers):
            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setFormatter(ColoredFormatter(self.FORMAT, datefmt=self.DATE_FORMAT))
            console_handler._via_console = True
            self.root.addHandler(console_handler)

        if log_dir:
            existing = [h for h in self.root.handlers if isinstance(h, logging.FileHandler)]
            if existing:
                self.log_file = Path(existing[0].baseFilename)
            else:
                log_dir = Path(log_dir)
                log_dir.mkdir(parents=True, exist_ok=True)

                timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')
                log_file = log_dir / f"{ROOT_LOGGER_NAME}_{timestamp}.log"

                file_handler = logging.FileHandler(log_file, encoding='utf-8')
                file_handler.setFormatter(logging.Formatter(self.FORMAT, datefmt=self.DATE_FORMAT))
                self.root.addHandler(file_handler)
                self.log_file = log_file

    def get_logger(self) -> logging.Logger:
        """获取日志记录器实例"""
        return self.logger

    def info(self, message: str):
        self.logger.info(message)

    def debug(self, message: str):
        self.logger.debug(message)

    def warning(self, message: str):
        self.logger.warning(message)

    def error(self, message: str):
        self.logger.error(message)

    def log_progress(self, current: int, total: int,
                     prefix: str = "进度", step: int = 1):
        """记录进度"""
        if total <= 0:
            return
        if current % step == 0 or current >= total:
            percentage = (current / total) * 100
            self.info(f"{prefix}: {current}/{total} ({percentage:.1f}%)")

    def get_log_file(self) -> Optional[Path]:
        """获取日志文件路径"""
        return self.log_file


def setup_logging(name: str = 'main',
                  log_dir: Optional[str] = None,
                  level: Union[int, str, None] = None) -> Logger:
    """
    快速设置日志记录

    Args:
        name: 模块名
        log_dir: 日志目录
        level: 日志级别

    Returns:
        日志记录器实例
    """
    return Logger(name, log_dir, level)
