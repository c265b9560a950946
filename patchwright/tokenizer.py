"""Token counting with tiktoken."""

import re
from typing import Optional

import tiktoken

from .logger import get_logger

_log = get_logger(__name__)

DEFAULT_ENCODING = "cl100k_base"

_encoder_cache = {}
_CJK_PATTERN = re.compile(r'[一-鿿぀-ゟ゠-ヿ가-힯]')


def _get_encoder(model: Optional[str]):
    """Get tiktoken encoder for model, with caching."""
    key = model or DEFAULT_ENCODING
    if key in _encoder_cache:
        return _encoder_cache[key]

    try:
        enc = tiktoken.encoding_for_model(model) if model else tiktoken.get_encoding(DEFAULT_ENCODING)
    except KeyError:
        # Provider-prefixed names ("openrouter/x/y") are unknown to tiktoken.
        enc = tiktoken.get_encoding(DEFAULT_ENCODING)

    _encoder_cache[key] = enc
    return enc


def count_tokens(text: str, model: Optional[str] = None) -> int:
    """Count tokens for ``text``.

    tiktoken fetches its BPE files on first use; when that fails the
    heuristic estimate is used instead.
    """
    if not text:
        return 0
    try:
        return len(_get_encoder(model).encode(text, disallowed_special=()))
    except Exception as e:
        _log.debug("tiktoken unavailable (%s); using heuristic estimate", e)
        return _heuristic_estimate(text)


def _heuristic_estimate(text: str) -> int:
    """Heuristic token estimation for mixed CJK/English text."""
    cjk_chars = len(_CJK_PATTERN.findall(text))
    non_cjk = _CJK_PATTERN.sub(' ', text)
    # English: ~4 chars per token; CJK: ~1.5 chars per token
    return max(1, int(len(non_cjk) / 4 + cjk_chars / 1.5))
