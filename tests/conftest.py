import os
import sys
import threading

import pytest

# Keep app imports offline and keyless.
os.environ["NLTK_DOWNLOAD"] = "0"
os.environ["LLM_PROVIDER"] = "cerebras"
os.environ["LLM_API_KEY"] = ""
os.environ["CEREBRAS_API_KEY"] = ""

ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from utils.ai_client import LLMError  # noqa: E402


class FakeLLM:
    """Stand-in chat client. ``responder(messages)`` returns a dict, a string
    or raises; calls are recorded."""

    def __init__(self, responder):
        self.responder = responder
        self.calls = []
        self._lock = threading.Lock()

    def _respond(self, messages):
        with self._lock:
            self.calls.append(messages)
        return self.responder(messages)

    def complete_json(self, messages, temperature=0.2):
        result = self._respond(messages)
        if not isinstance(result, dict):
            raise LLMError("not an object")
        return result

    def complete(self, messages, temperature=0.2, json_mode=False):
        result = self._respond(messages)
        return result if isinstance(result, str) else str(result)


def user_prompt(messages):
    return next(m["content"] for m in messages if m["role"] == "user")


@pytest.fixture
def fake_llm():
    return FakeLLM
