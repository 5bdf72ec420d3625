"""
homeops/llm/openai_adapter.py
OpenAI-compatible chat completions backend. Works against api.openai.com
or any server speaking the same /chat/completions dialect (vLLM,
llama.cpp server, Ollama's /v1 endpoint).

JSON output mode is requested so the model returns a bare object;
schema.parse_classification still validates every field.
"""

import json
import logging
import urllib.error
import urllib.request

from homeops.llm.base import ClassifierBackend

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = 'https://api.openai.com/v1'
DEFAULT_MODEL    = 'gpt-4o-mini'


class OpenAIAdapter(ClassifierBackend):

    def __init__(
        self,
        model:       str   = DEFAULT_MODEL,
        base_url:    str   = DEFAULT_BASE_URL,
        timeout_sec: float = 10,
        temperature: float = 0.2,
        max_tokens:  int   = 200,
    ):
        self.model       = model
        self.base_url    = base_url.rstrip('/')
        self.timeout_sec = timeout_sec
        self.temperature = temperature
        self.max_tokens  = max_tokens

    # ── AVAILABILITY CHECK ───────────────────────────────────
    def is_available(self) -> bool:
        """Unauthenticated ping of the models listing. 401 still means reachable."""
        try:
            req = urllib.request.Request(f"{self.base_url}/models", method='GET')
            with urllib.request.urlopen(req, timeout=5):
                return True
        except urllib.error.HTTPError as e:
            return e.code in (401, 403)
        except (urllib.error.URLError, OSError) as e:
            logger.warning(f"Classifier backend not reachable at {self.base_url}: {e}")
            return False

    # ── CLASSIFICATION ───────────────────────────────────────
    def complete(self, text: str, api_key: str) -> str:
        payload = json.dumps({
            'model':           self.model,
            'temperature':     self.temperature,
            'max_tokens':      self.max_tokens,
            'response_format': {'type': 'json_object'},
            'messages': [
                {'role': 'system', 'content': self.build_prompt()},
                {'role': 'user',   'content': text[:2000]},
            ],
        }).encode('utf-8')

        req = urllib.request.Request(
            f"{self.base_url}/chat/completions",
            data    = payload,
            headers = {
                'Content-Type':  'application/json',
                'Authorization': f"Bearer {api_key}",
            },
            method  = 'POST',
        )
        with urllib.request.urlopen(req, timeout=self.timeout_sec) as resp:
            data = json.loads(resp.read().decode('utf-8'))

        try:
            return data['choices'][0]['message']['content'] or ''
        except (KeyError, IndexError, TypeError):
            logger.warning("Classifier response had no choices[0].message.content")
            return ''
