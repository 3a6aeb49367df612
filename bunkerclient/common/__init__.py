# Common utilities
from bunkerclient.common.crypto import CryptoUtils as CryptoUtils
from bunkerclient.common.logging_utils import setup_logger as setup_logger

__all__ = ["CryptoUtils", "setup_logger"]
