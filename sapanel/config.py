# Configuration settings should be set in app.config
# get_config falls back to the SAPanel class attributes and the environment
import os
import logging
from flask import current_app
from functools import lru_cache
import sapanel
from typing import Optional, Union


@lru_cache(maxsize=128)
def get_config(option: str) -> Optional[Union[bool, int, str]]:
    """Retrieve a configuration parameter from the app
    :param option: configuration parameter
    :return: configuration value
    """
    try:
        result = current_app.config[option]
    except (KeyError, RuntimeError):
        result = getattr(sapanel.SAPanel, option, None)
    if result is not None:
        return result

    env_val = os.environ.get(option, None)
    if env_val is not None and env_val.isdigit():
        return int(env_val)
    return env_val


def get_int_config(option: str, default: int) -> int:
    """
    :param option: configuration parameter
    :param default: value used when the option is missing or not an integer
    :return: integer configuration value
    """
    value = get_config(option)
    try:
        return int(value)
    except (TypeError, ValueError):
        sapanel.log.warning(f"Invalid integer config {option}={value!r}, using {default}")
        return default


def is_debug() -> bool:
    """
    We use the loglevel to check whether we're running in debug mode
    :return: whether the app is in debug mode
    :rtype: Boolean
    """
    return sapanel.log.getEffectiveLevel() < logging.INFO
