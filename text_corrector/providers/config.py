from dataclasses import dataclass
from typing import Optional, Tuple
import os


@dataclass(frozen=True)
class ProviderConfig:
    """Credentials, endpoints and transport timeouts for correction providers.

    Values are loaded from environment variables to keep credentials out of code.
    This module is safe to import during setup; it does not perform any network I/O.
    """

    baidu_api_key: Optional[str] = None
    baidu_secret_key: Optional[str] = None
    deepseek_api_key: Optional[str] = None

    baidu_token_url: str = "https://aip.baidubce.com/oauth/2.0/token"
    baidu_correction_url: str = "https://aip.baidubce.com/rpc/2.0/nlp/v2/text_correction"
    deepseek_url: str = "https://api.deepseek.com/chat/completions"
    deepseek_model: str = "deepseek-chat"

    # (connect, read) seconds, handed straight to requests
    baidu_timeout: Tuple[float, float] = (10.0, 10.0)
    deepseek_timeout: Tuple[float, float] = (90.0, 120.0)

    @staticmethod
    def from_env() -> "ProviderConfig":
        return ProviderConfig(
            baidu_api_key=os.getenv("BAIDU_API_KEY"),
            baidu_secret_key=os.getenv("BAIDU_SECRET_KEY"),
            deepseek_api_key=os.getenv("DEEPSEEK_API_KEY"),
            deepseek_model=os.getenv("DEEPSEEK_MODEL", "deepseek-chat"),
        )

    def validate_environment(self, logger: Optional[object] = None) -> None:
        """Log warnings if no provider has usable credentials."""
        if self.baidu_api_key and self.baidu_secret_key:
            return
        if self.deepseek_api_key:
            return
        message = "No correction provider credentials configured; set BAIDU_API_KEY/BAIDU_SECRET_KEY or DEEPSEEK_API_KEY."
        if logger is not None:
            logger.warning(message)
