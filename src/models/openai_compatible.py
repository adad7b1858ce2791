from schema.story import StoryOptions

from .base import BaseChatModel


class OpenAICompatibleModel(BaseChatModel):
    def __init__(self, api_key: str, base_url: str):
        super().__init__(
            api_key=api_key,
            base_url=base_url,
            missing_key_error="API 地址和密钥为必填项。请在“设置”中填写您的 API 凭据。",
        )

    @classmethod
    def from_options(cls, options: StoryOptions) -> "OpenAICompatibleModel":
        return cls(api_key=options.api_key, base_url=options.api_base_url)
