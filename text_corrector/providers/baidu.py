import logging
from typing import Any, Dict, Optional

import requests
from pydantic import ValidationError

from text_corrector.correction.schemas import TokenResponse
from text_corrector.errors import AuthError
from text_corrector.providers.base import AccessToken, BaseCorrectionProvider, mask_secret
from text_corrector.providers.config import ProviderConfig


class BaiduProvider(BaseCorrectionProvider):
    """Baidu text-correction API.

    Uses an OAuth client-credential token; responses carry fragments under
    item.details[].vec_fragment[] with positions local to each sentence.
    """

    def __init__(
        self,
        config: Optional[ProviderConfig] = None,
        logger: Optional[logging.Logger] = None,
        session: Optional[requests.Session] = None,
    ):
        super().__init__(config, logger, session)
        self.api_key = self.config.baidu_api_key
        self.secret_key = self.config.baidu_secret_key

    def get_name(self) -> str:
        return "Baidu"

    def get_token(self) -> AccessToken:
        if not self.api_key or not self.secret_key:
            raise AuthError("Baidu API key or secret key is not set")

        self.logger.info(f"Requesting Baidu access token for key {mask_secret(self.api_key)}")
        body = self._post_json(
            self.config.baidu_token_url,
            timeout=self.config.baidu_timeout,
            params={
                "grant_type": "client_credentials",
                "client_id": self.api_key,
                "client_secret": self.secret_key,
            },
        )
        try:
            token = TokenResponse.model_validate(body)
        except ValidationError as e:
            raise AuthError(f"Baidu token response has no access_token: {body.get('error_description', body)}") from e

        self.logger.info(f"Obtained Baidu access token {mask_secret(token.access_token)}")
        return AccessToken(value=token.access_token, expires_in=token.expires_in)

    def invoke(self, text: str, token: str) -> Dict[str, Any]:
        self.logger.info(f"Sending {len(text)} characters to Baidu text correction")
        return self._post_json(
            self.config.baidu_correction_url,
            timeout=self.config.baidu_timeout,
            params={"access_token": token},
            json_body={"text": text},
            headers={"Content-Type": "application/json"},
        )
