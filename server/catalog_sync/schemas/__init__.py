"""Pydantic schemas for catalog payloads and request/response validation."""

from .catalog import *  # noqa: F403
from .common import *  # noqa: F403
from .media import *  # noqa: F403
from .sync import *  # noqa: F403
