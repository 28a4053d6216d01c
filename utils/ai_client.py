import json
import logging
import re
import time

import requests

logger = logging.getLogger("quiz-backend")

GEMINI_URL = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"
OPENAI_COMPATIBLE = ("cerebras", "openai")

_FENCE_RE = re.compile(r"^```[a-zA-Z]*\s*|\s*```$")


class LLMError(RuntimeError):
    pass


class LLMNotConfigured(LLMError):
    pass


def parse_json_object(text):
    """Parse a JSON object out of a model reply.

    Models sometimes wrap the object in Markdown fences or add a sentence
    around it, so the outermost ``{...}`` span is tried when a plain parse
    fails.
    """
    if not isinstance(text, str) or not text.strip():
        raise LLMError("Model returned an empty reply")
    cleaned = _FENCE_RE.sub("", text.strip()).strip()
    try:
        data = json.loads(cleaned)
    except ValueError as p_err:
        m = re.search(r"(\{.*\})", cleaned, flags=re.DOTALL)
        if not m:
            raise LLMError("No JSON object found in model output") from p_err
        try:
            data = json.loads(m.group(1))
        except ValueError:
            raise LLMError("Failed to parse JSON from model output") from p_err
    if not isinstance(data, dict):
        raise LLMError("Model returned JSON that is not an object")
    return data


class ChatClient:
    """Minimal chat-completion client over ``requests``.

    Speaks either the OpenAI-compatible ``/chat/completions`` shape (Cerebras,
    OpenAI) or Google's ``generateContent`` REST shape.
    """

    def __init__(self, provider, api_key, model, base_url=None, timeout=90,
                 max_attempts=3, backoff=1.0, session=None):
        if provider not in OPENAI_COMPATIBLE and provider != "gemini":
            raise ValueError("Unknown LLM provider: {}".format(provider))
        if not api_key:
            raise LLMNotConfigured("Missing API key for provider {}".format(provider))
        self.provider = provider
        self.api_key = api_key
        self.model = model
        self.base_url = (base_url or "").rstrip("/")
        self.timeout = timeout
        self.max_attempts = max(1, int(max_attempts))
        self.backoff = backoff
        self.session = session or requests.Session()

    def _openai_request(self, messages, temperature, json_mode):
        url = f"{self.base_url}/chat/completions"
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }
        payload = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature,
        }
        if json_mode:
            payload["response_format"] = {"type": "json_object"}
        return url, headers, payload

    def _gemini_request(self, messages, temperature, json_mode):
        url = GEMINI_URL.format(model=self.model)
        headers = {
            "Content-Type": "application/json",
            "x-goog-api-key": self.api_key,
        }
        system = [m["content"] for m in messages if m.get("role") == "system"]
        contents = []
        for m in messages:
            if m.get("role") == "system":
                continue
            role = "model" if m.get("role") == "assistant" else "user"
            contents.append({"role": role, "parts": [{"text": m.get("content", "")}]})
        generation_config = {"temperature": temperature}
        if json_mode:
            generation_config["responseMimeType"] = "application/json"
        payload = {"contents": contents, "generationConfig": generation_config}
        if system:
            payload["systemInstruction"] = {"parts": [{"text": "\n\n".join(system)}]}
        return url, headers, payload

    def _extract_text(self, data):
        if self.provider == "gemini":
            candidates = data.get("candidates", [])
            if not candidates:
                raise LLMError("Gemini response contains no candidates")
            parts = candidates[0].get("content", {}).get("parts", [])
            if not parts:
                raise LLMError("Gemini response content.parts missing")
            text = parts[0].get("text", "")
        else:
            choices = data.get("choices", [])
            if not choices:
                raise LLMError("Completion response contains no choices")
            text = (choices[0].get("message") or {}).get("content") or ""
        if not isinstance(text, str) or not text.strip():
            raise LLMError("Model returned empty text response")
        return text

    def complete(self, messages, temperature=0.2, json_mode=False):
        if self.provider == "gemini":
            url, headers, payload = self._gemini_request(messages, temperature, json_mode)
        else:
            url, headers, payload = self._openai_request(messages, temperature, json_mode)
        last_err = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                logger.info("LLM request attempt %d/%d (%s)", attempt, self.max_attempts, self.model)
                resp = self.session.post(url, headers=headers, json=payload, timeout=self.timeout)
                resp.raise_for_status()
                return self._extract_text(resp.json())
            except (requests.RequestException, ValueError, LLMError) as exc:
                last_err = exc
                logger.warning("LLM attempt %d failed: %s", attempt, exc)
                if attempt < self.max_attempts:
                    sleep_for = self.backoff * (2 ** (attempt - 1))
                    logger.info("Retrying after %s seconds...", sleep_for)
                    time.sleep(sleep_for)
        raise LLMError(f"LLM request failed after {self.max_attempts} attempts: {last_err}")

    def complete_json(self, messages, temperature=0.2):
        return parse_json_object(self.complete(messages, temperature=temperature, json_mode=True))


def client_from_config(config):
    """Build a ChatClient from a Flask config mapping."""
    provider = config.get("LLM_PROVIDER", "cerebras")
    api_key = config.get("LLM_API_KEY")
    if not api_key:
        raise LLMNotConfigured("No API key configured for provider {}".format(provider))
    return ChatClient(
        provider,
        api_key,
        config.get("LLM_MODEL"),
        base_url=config.get("LLM_BASE_URL"),
        timeout=config.get("LLM_TIMEOUT", 90),
        max_attempts=config.get("LLM_MAX_ATTEMPTS", 3),
        backoff=config.get("LLM_BACKOFF", 1.0),
    )
