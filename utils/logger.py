import logging
import os
from datetime import datetime


class ColoredFormatter(logging.Formatter):
    """带颜色的日志格式化器"""

    # ANSI颜色代码
    COLORS = {
        'DEBUG': '\033[36m',      # 青色
        'INFO': '\033[32m',       # 绿色
        'WARNING': '\033[33m',    # 黄色
        'ERROR': '\033[31m',      # 红色
        'CRITICAL': '\033[35m',   # 紫色
        'RESET': '\033[0m'        # 重置颜色
    }

    def format(self, record):
        formatted = super().format(record)
        if record.levelname in self.COLORS:
            formatted = f"{self.COLORS[record.levelname]}{formatted}{self.COLORS['RESET']}"
        return formatted


LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

# handlers installed by setup_logger, replaced on every call
_installed_handlers = []


def setup_logger(log_level=logging.INFO, log_file=None, enable_color=True, log_dir='logs'):
    """
    设置日志系统

    Args:
        log_level: 日志级别
        log_file: 日志文件名，如果为None则自动根据时间生成文件名
        enable_color: 是否启用颜色输出
        log_dir: 日志目录，为None时只输出到控制台

    Returns:
        str or None: path of the log file
    """
    root_logger = logging.getLogger()
    for handler in _installed_handlers:
        root_logger.removeHandler(handler)
        handler.close()
    _installed_handlers.clear()

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    log_path = None
    if log_dir:
        if log_file is None:
            current_time = datetime.now().strftime("%Y%m%d_%H%M%S")
            log_file = f"capture_{current_time}.log"
        os.makedirs(log_dir, exist_ok=True)
        log_path = os.path.join(log_dir, log_file)

        file_handler = logging.FileHandler(log_path, encoding='utf-8')
        file_handler.setLevel(log_level)
        file_handler.setFormatter(formatter)
        _installed_handlers.append(file_handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    if enable_color:
        console_handler.setFormatter(ColoredFormatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    else:
        console_handler.setFormatter(formatter)
    _installed_handlers.append(console_handler)

    root_logger.setLevel(log_level)
    for handler in _installed_handlers:
        root_logger.addHandler(handler)

    root_logger.info("=" * 50)
    root_logger.info("depth capture starting")
    root_logger.info(f"log level: {logging.getLevelName(log_level)}")
    root_logger.info(f"log file: {log_path or 'disabled'}")
    root_logger.info(f"color output: {'on' if enable_color else 'off'}")
    root_logger.info("=" * 50)
    return log_path


def get_logger(name):
    """
    获取指定名称的logger

    Args:
        name: logger名称

    Returns:
        logging.Logger: logger实例
    """
    return logging.getLogger(name)
