from text_corrector.providers.base import AccessToken, BaseCorrectionProvider
from text_corrector.providers.baidu import BaiduProvider
from text_corrector.providers.deepseek import DeepSeekProvider

__all__ = ["AccessToken", "BaseCorrectionProvider", "BaiduProvider", "DeepSeekProvider"]
