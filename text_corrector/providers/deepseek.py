import logging
from typing import Any, Dict, Optional

import requests

from text_corrector.errors import AuthError
from text_corrector.providers.base import AccessToken, BaseCorrectionProvider
from text_corrector.providers.config import ProviderConfig

SYSTEM_PROMPT = (
    "You are a professional proofreading assistant. Check the text for spelling, grammar and word-choice "
    "errors and answer with JSON in exactly the requested format."
)

CORRECTION_PROMPT = """Check the following text for errors and correct them. Output only JSON, with no other content, using exactly this structure:
{
  "item": {
    "text": "original text",
    "error_num": number of errors,
    "correct_query": "corrected text",
    "content_len": text length,
    "details": [
      {
        "sentence": "original sentence",
        "sentence_fixed": "corrected sentence",
        "sentence_id": sentence id,
        "begin_sentence_offset": sentence start offset,
        "end_sentence_offset": sentence end offset,
        "vec_fragment": [
          {
            "explain": "reason for the change",
            "begin_pos": start position of the error inside the sentence,
            "end_pos": end position of the error inside the sentence,
            "ori_frag": "original fragment",
            "correct_frag": "corrected fragment",
            "label": "error label"
          }
        ]
      }
    ]
  }
}

Text to check:
"""


class DeepSeekProvider(BaseCorrectionProvider):
    """DeepSeek chat-completion API prompted to answer in the Baidu response shape.

    The returned envelope is left intact; the correction payload inside
    choices[0].message.content is extracted by the normalizer.
    """

    def __init__(
        self,
        config: Optional[ProviderConfig] = None,
        logger: Optional[logging.Logger] = None,
        session: Optional[requests.Session] = None,
        temperature: float = 0.0,
        max_tokens: int = 4000,
    ):
        super().__init__(config, logger, session)
        self.api_key = self.config.deepseek_api_key
        self.temperature = temperature
        self.max_tokens = max_tokens

    def get_name(self) -> str:
        return "DeepSeek"

    def get_token(self) -> AccessToken:
        if not self.api_key:
            raise AuthError("DeepSeek API key is not set")
        return AccessToken(value=self.api_key)

    def build_request(self, text: str) -> Dict[str, Any]:
        return {
            "model": self.config.deepseek_model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": CORRECTION_PROMPT + text},
            ],
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "stream": False,
        }

    def invoke(self, text: str, token: str) -> Dict[str, Any]:
        self.logger.info(f"Sending {len(text)} characters to DeepSeek ({self.config.deepseek_model})")
        return self._post_json(
            self.config.deepseek_url,
            timeout=self.config.deepseek_timeout,
            json_body=self.build_request(text),
            headers={"Authorization": f"Bearer {token}", "Content-Type": "application/json"},
        )
