# config/settings/local.py
from .base import *  # noqa

DEBUG = True
LOGGING["loggers"]["req_core"]["level"] = "DEBUG"  # noqa: F405
