import logging

import tiktoken

logger = logging.getLogger(__name__)


class TiktokenCounter:
    """Token counter backed by tiktoken encodings."""

    def __init__(self, fallback_encoding: str = "cl100k_base"):
        self._fallback_encoding = fallback_encoding
        self._encodings: dict[str, tiktoken.Encoding] = {}

    def encoding(self, model_name: str) -> tiktoken.Encoding:
        encoding = self._encodings.get(model_name)
        if encoding is None:
            encoding = self._load_encoding(model_name)
            self._encodings[model_name] = encoding
        return encoding

    def _load_encoding(self, model_name: str) -> tiktoken.Encoding:
        try:
            return tiktoken.encoding_for_model(model_name)
        except KeyError:
            logger.info(
                f"No tiktoken encoding for {model_name}, "
                f"using {self._fallback_encoding}"
            )
            return tiktoken.get_encoding(self._fallback_encoding)

    def count(self, model_name: str, text: str) -> int:
        if not text:
            return 0
        return len(self.encoding(model_name).encode(text, disallowed_special=()))
