"""Runtime settings, read from the environment."""
import os
from enum import Enum

DEBUG_MODE = os.getenv("DEBUG", "0") == "1"
TEST_MODE = os.getenv("TEST_MODE", "0") == "1"

# DashScope's OpenAI-compatible endpoint
DEFAULT_BASE_URL = "https://dashscope.aliyuncs.com/compatible-mode/v1"
DEFAULT_SESSION_SIZE = 10

# Sampling temperatures: analysis should be deterministic, tips a bit creative
ANALYSIS_TEMPERATURE = 0.2
TIPS_TEMPERATURE = 0.7


class QwenModel(str, Enum):
    QWEN_PLUS = "qwen-plus"
    QWEN_TURBO = "qwen-turbo"
    QWEN_MAX = "qwen-max"


def qwen_api_key() -> str:
    return os.environ.get("QWEN_API_KEY", "").strip()


def qwen_model() -> str:
    return os.environ.get("QWEN_MODEL", "").strip() or QwenModel.QWEN_PLUS.value


def qwen_base_url() -> str:
    return os.environ.get("QWEN_BASE_URL", "").strip() or DEFAULT_BASE_URL
