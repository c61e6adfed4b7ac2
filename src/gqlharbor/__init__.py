from gqlharbor.logger import get_logger

__author__ = """gqlharbor maintainers"""
__version__ = "0.1.0"

log = get_logger("gqlharbor")
