# -*- coding: utf-8 -*-
"""日志配置"""

import logging
import os
from logging.handlers import RotatingFileHandler


def setup_logging(log_dir='logs', level=logging.INFO, console=False):
    """
    为 chiroptera 命名空间安装滚动文件日志，重复调用不会重复添加处理器

    Args:
        log_dir: 日志目录
        level: 日志级别
        console: 是否同时输出到终端

    Returns:
        tuple: (logger, 日志文件路径)
    """
    os.makedirs(log_dir, exist_ok=True)
    log_path = os.path.join(log_dir, 'chiroptera.log')

    logger = logging.getLogger('chiroptera')
    logger.setLevel(level)

    if not logger.handlers:
        fmt = logging.Formatter(
            '%(asctime)s %(levelname)s %(name)s %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S',
        )
        handler = RotatingFileHandler(log_path, maxBytes=2_000_000, backupCount=3,
                                      encoding='utf-8')
        handler.setFormatter(fmt)
        logger.addHandler(handler)

        if console:
            stream = logging.StreamHandler()
            stream.setFormatter(fmt)
            logger.addHandler(stream)

    return logger, log_path
