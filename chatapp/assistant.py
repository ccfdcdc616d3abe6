import logging
from typing import Any, Dict, Iterable, List, Optional

from openai import OpenAI

from chatapp.config import Settings

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = "You are a helpful assistant."
FALLBACK_REPLY = "AI is currently unavailable, your backend and DB are working 🙂"
EMPTY_REPLY = "No reply from AI"
MISSING_KEY_PLACEHOLDER = "missing-api-key"


def _field(turn: Any, name: str) -> str:
    if isinstance(turn, dict):
        return turn[name]
    return getattr(turn, name)


def build_messages(history: Iterable[Any], system_prompt: str = SYSTEM_PROMPT) -> List[Dict[str, str]]:
    """System instruction followed by the whole conversation, in order.

    History items may be dicts or objects with ``role`` and ``content``.
    """
    messages = [{"role": "system", "content": system_prompt}]
    for turn in history:
        messages.append({"role": _field(turn, "role"), "content": _field(turn, "content")})
    return messages


class Assistant:
    """Turns a message history into one chat-completion call and a reply.

    Provider failures never escape get_reply(): they are logged and replaced
    by FALLBACK_REPLY, which is then stored like any other assistant message.
    """

    def __init__(
        self,
        api_key: Optional[str],
        base_url: Optional[str] = None,
        model: str = "llama-3.3-70b-versatile",
        max_tokens: int = 2048,
        temperature: float = 0.7,
        client: Any = None,
    ):
        if not api_key:
            logger.warning("GROQ_API_KEY is NOT set, AI replies will fall back to the unavailable message")
        else:
            logger.info("GROQ_API_KEY loaded.")
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        # the SDK refuses an empty key; a placeholder lets requests fail into the fallback
        self.client = client or OpenAI(api_key=api_key or MISSING_KEY_PLACEHOLDER, base_url=base_url, max_retries=0)

    @classmethod
    def from_settings(cls, settings: Settings, client: Any = None) -> "Assistant":
        return cls(
            api_key=settings.llm_api_key,
            base_url=settings.llm_base_url,
            model=settings.llm_model,
            max_tokens=settings.llm_max_tokens,
            temperature=settings.llm_temperature,
            client=client,
        )

    def get_reply(self, history: Iterable[Any]) -> str:
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=build_messages(history),
                max_tokens=self.max_tokens,
                temperature=self.temperature,
            )
            content = response.choices[0].message.content if response.choices else None
            if not content or not content.strip():
                return EMPTY_REPLY
            logger.info(f"LLM reply received: {len(content)} chars")
            return content
        except Exception as e:
            logger.error(f"LLM provider error: {e}")
            return FALLBACK_REPLY
