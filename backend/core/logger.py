import logging
import os
import sys

LINE = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Tudo que o CRM loga fica sob este prefixo (ex: funilcrm.routers.leads)
ROOT_NAME = "funilcrm"

LEVEL_COLORS = {
    logging.DEBUG: "\x1b[38;21m",
    logging.INFO: "\x1b[38;5;39m",
    logging.WARNING: "\x1b[38;5;226m",
    logging.ERROR: "\x1b[38;5;196m",
    logging.CRITICAL: "\x1b[31;1m",
}
RESET = "\x1b[0m"


class ColoredFormatter(logging.Formatter):
    """Cor por nível no terminal; o arquivo de log usa o Formatter simples"""

    def __init__(self):
        super().__init__(LINE, datefmt=DATE_FORMAT)

    def format(self, record):
        line = super().format(record)
        color = LEVEL_COLORS.get(record.levelno)
        return f"{color}{line}{RESET}" if color else line


def _use_color() -> bool:
    # LOG_COLOR=0 para logs de container/CI sem ANSI
    flag = os.getenv("LOG_COLOR")
    if flag is not None:
        return flag.lower() in ("1", "true", "yes")
    return sys.stdout.isatty()


def _qualified(name: str) -> str:
    if not name or name == ROOT_NAME or name.startswith(ROOT_NAME + "."):
        return name or ROOT_NAME
    return f"{ROOT_NAME}.{name}"


def setup_logger(name: str = ROOT_NAME, level: str = None) -> logging.Logger:
    """
    Logger do módulo, pendurado em `funilcrm`.

    Os handlers (console e LOG_FILE) ficam só no logger raiz do CRM; os
    loggers de módulo propagam para ele. `level` sobrescreve LOG_LEVEL.
    """
    root = logging.getLogger(ROOT_NAME)
    if not root.handlers:
        root_level = getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO)
        root.setLevel(root_level)
        root.propagate = False

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(ColoredFormatter() if _use_color() else logging.Formatter(LINE, datefmt=DATE_FORMAT))
        root.addHandler(console_handler)

        # Arquivo opcional (LOG_FILE vazio desativa)
        log_file = os.getenv("LOG_FILE", "funilcrm.log")
        if log_file:
            file_handler = logging.FileHandler(log_file, encoding="utf-8")
            file_handler.setFormatter(logging.Formatter(LINE, datefmt=DATE_FORMAT))
            root.addHandler(file_handler)

    logger = logging.getLogger(_qualified(name))
    if level:
        logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    return logger


# Logger padrão da aplicação
logger = setup_logger(ROOT_NAME)
