
from pydantic_settings import BaseSettings

from chatservice.core.models.completion import ChatCompletionConfigInput


class Settings(BaseSettings):

    llm_base_url: str = "http://localhost:11434/v1"
    llm_api_key: str = "ollama"
    llm_model: str = "qwen2.5:7b"
    llm_model_max_tokens: int = 8192
    llm_max_tokens: int = 1024
    llm_temperature: float = 0.7
    llm_top_p: float = 1.0
    llm_n: int = 1
    llm_stop: list[str] = []
    llm_presence_penalty: float = 0.0
    llm_frequency_penalty: float = 0.0

    initial_system_message: str = "You are a helpful assistant."

    tokenizer_fallback_encoding: str = "cl100k_base"

    # Storage: "sqlite" or "memory"
    store_backend: str = "sqlite"
    sqlite_path: str = "./data/chats.db"

    stream_buffer_size: int = 16
    turn_timeout: float | None = 120.0

    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        extra = "ignore"

    def completion_config(self) -> ChatCompletionConfigInput:
        """Config used when a turn starts a new chat."""
        return ChatCompletionConfigInput(
            model=self.llm_model,
            model_max_tokens=self.llm_model_max_tokens,
            initial_system_message=self.initial_system_message,
            temperature=self.llm_temperature,
            top_p=self.llm_top_p,
            n=self.llm_n,
            stop=list(self.llm_stop),
            max_tokens=self.llm_max_tokens,
            presence_penalty=self.llm_presence_penalty,
            frequency_penalty=self.llm_frequency_penalty,
        )


settings = Settings()
