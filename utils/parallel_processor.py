#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# @Time    : 2026/10/12 15:10
# @Author  : hejun
"""
并发调用模块
外部服务调用（向量化、向量索引、存储）的超时控制与并发执行

每个调用跑在独立的守护线程上：超时的调用无法强制终止，只能放弃，
放弃的线程不会占用其他调用（尤其是结构化检索的存储调用）的执行位置。
"""
import threading
from concurrent.futures import FIRST_EXCEPTION, Future, TimeoutError as FuturesTimeoutError, wait
from typing import Any, Callable, Dict, Optional

from utils.logger import setup_logging

# 初始化日志记录器
logger = setup_logging('parallel_processor').get_logger()

__all__ = ['ParallelProcessor', 'FuturesTimeoutError']


class ParallelProcessor:
    """超时受控的并发调用器（I/O 密集型调用）"""

    def __init__(self, thread_name_prefix: str = 'via-io'):
        self.thread_name_prefix = thread_name_prefix

    def _start(self, func: Callable, *args, **kwargs) -> Future:
        """在新的守护线程中执行 func，结果通过 Future 返回"""
        future: Future = Future()

        def runner():
            if not future.set_running_or_notify_cancel():
                return
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                future.set_exception(e)
            else:
                future.set_result(result)

        name = f"{self.thread_name_prefix}-{getattr(func, '__name__', 'call')}"
        threading.Thread(target=runner, name=name, daemon=True).start()
        return future

    def call_with_timeout(self, func: Callable, timeout: Optional[float], *args, **kwargs) -> Any:
        """
        执行并等待结果

        Args:
            func: 调用函数
            timeout: 超时秒数，None 表示不限
            *args, **kwargs: 传给 func 的参数

        Returns:
            func 的返回值

        Raises:
            FuturesTimeoutError: 超时；func 自身的异常原样抛出
        """
        future = self._start(func, *args, **kwargs)
        try:
            return future.result(timeout=timeout)
        except FuturesTimeoutError:
            logger.warning(f"调用超时 ({timeout}s)，放弃结果: {getattr(func, '__name__', func)}")
            raise

    def run_concurrently(self, tasks: Dict[str, Callable[[], Any]],
                         timeout: Optional[float] = None) -> Dict[str, Any]:
        """
        并发执行多个无参任务，全部完成后返回

        Args:
            tasks: 任务名 -> 无参调用
            timeout: 所有任务共用的超时秒数（一个截止时间，不是每个任务各自计时）

        Returns:
            任务名 -> 结果；任一任务失败则抛出其异常
        """
        futures = {name: self._start(task) for name, task in tasks.items()}
        done, not_done = wait(list(futures.values()), timeout=timeout, return_when=FIRST_EXCEPTION)

        for future in done:
            error = future.exception()
            if error is not None:
                raise error

        if not_done:
            pending = [name for name, future in futures.items() if future in not_done]
            logger.warning(f"并发任务超时 ({timeout}s): {pending}")
            raise FuturesTimeoutError()

        return {name: future.result() for name, future in futures.items()}
