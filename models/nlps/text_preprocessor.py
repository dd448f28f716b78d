"""
Chat Text Preprocessor Module

Cleans raw chat messages before they are tokenized for the chain. Chat
exports carry platform markup that would otherwise end up as chain words:

1. **Platform markup**:
    - User, role and channel mentions (``<@123>``, ``<@&123>``, ``<#123>``)
    - Custom emoji (``<:name:123>``, ``<a:name:123>``)
    - Code blocks and inline code

2. **Web content**:
    - URLs

3. **Emoji**:
    - Kept, removed, or converted to ``:shortcode:`` text

4. **Whitespace**:
    - Collapsing runs of whitespace

### Example Usage:

```python
preprocessor = ChatTextPreprocessor(emoji_mode="remove")
preprocessor.preprocess("hey <@1234> look https://example.com 😊")
# 'hey look'
```
"""

import re

from emoji import demojize, replace_emoji

MENTION_PATTERN = re.compile(r"<(?:@[!&]?|#)\d+>")
CUSTOM_EMOJI_PATTERN = re.compile(r"<a?:\w+:\d+>")
CODE_BLOCK_PATTERN = re.compile(r"```.*?```", re.DOTALL)
INLINE_CODE_PATTERN = re.compile(r"`[^`]*`")
URL_PATTERN = re.compile(r"https?://\S+|www\.\S+")

EMOJI_MODES = ("keep", "remove", "demojize")


class ChatTextPreprocessor:
    def __init__(self, emoji_mode="keep", strip_code=True):
        """
        Args:
            emoji_mode (str): 'keep', 'remove' or 'demojize'
            strip_code (bool): Whether to drop code blocks and inline code
        """
        if emoji_mode not in EMOJI_MODES:
            raise ValueError(f"emoji_mode must be one of {EMOJI_MODES}, got {emoji_mode!r}")
        self.emoji_mode = emoji_mode
        self.strip_code = strip_code

    def remove_mentions(self, text):
        """Removes user, role and channel mentions."""
        return MENTION_PATTERN.sub(" ", text)

    def remove_custom_emoji(self, text):
        """Removes platform custom emoji markup."""
        return CUSTOM_EMOJI_PATTERN.sub(" ", text)

    def remove_code(self, text):
        """Removes fenced code blocks, then inline code spans."""
        text = CODE_BLOCK_PATTERN.sub(" ", text)
        return INLINE_CODE_PATTERN.sub(" ", text)

    def handle_urls(self, text):
        """Removes URLs from text."""
        return URL_PATTERN.sub(" ", text)

    def handle_emojis(self, text):
        """Applies the configured emoji mode."""
        if self.emoji_mode == "remove":
            return replace_emoji(text, replace="")
        if self.emoji_mode == "demojize":
            return demojize(text)
        return text

    def handle_whitespace(self, text):
        """Collapses whitespace runs and trims the ends."""
        return " ".join(text.split())

    def preprocess(self, text):
        """
        Run the full cleaning pipeline.

        Args:
            text (str or None): Raw message content

        Returns:
            str: Cleaned text ('' for missing input)
        """
        if not text:
            return ""

        if self.strip_code:
            text = self.remove_code(text)
        text = self.remove_mentions(text)
        text = self.remove_custom_emoji(text)
        text = self.handle_urls(text)
        text = self.handle_emojis(text)
        return self.handle_whitespace(text)
