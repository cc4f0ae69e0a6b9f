"""WordPiece tokenizer producing fixed-length, vocabulary-safe id sequences."""

import logging
from typing import Any, List, Optional

logger = logging.getLogger(__name__)


class WordPieceTokenizer:
    """
    BERT WordPiece tokenizer framed for a fixed-length embedding model.

    Every sequence has exactly ``max_length`` ids: ``[CLS]``, up to
    ``max_length - 2`` content ids, ``[SEP]``, then padding. Ids outside
    ``[0, vocab_limit)`` are remapped to ``unk_id`` because the embedding model
    cannot gather beyond its vocabulary table.

    Example:
        >>> tokenizer = WordPieceTokenizer(vocab_path="/data/local/tmp/vocab.txt")
        >>> ids = tokenizer.tokenize("where is the fire extinguisher")
        >>> ids[0], len(ids)
        (101, 128)
    """

    def __init__(
        self,
        vocab_path: Optional[str] = None,
        wordpiece: Optional[Any] = None,
        max_length: int = 128,
        vocab_limit: int = 30522,
        unk_id: int = 100,
        cls_id: int = 101,
        sep_id: int = 102,
        pad_id: int = 0,
        lowercase: bool = True,
    ):
        """
        Initialize the tokenizer.

        Args:
            vocab_path: WordPiece vocabulary file (one token per line)
            wordpiece: Pre-built object with ``tokenize(text)`` and
                ``convert_tokens_to_ids(tokens)``; takes precedence over vocab_path
            max_length: Total framed sequence length (including markers)
            vocab_limit: Exclusive upper bound of valid ids
            unk_id, cls_id, sep_id, pad_id: Reserved ids
            lowercase: Lowercase input before WordPiece splitting
        """
        if max_length < 2:
            raise ValueError("max_length must leave room for [CLS] and [SEP]")

        self.max_length = max_length
        self.vocab_limit = vocab_limit
        self.unk_id = unk_id
        self.cls_id = cls_id
        self.sep_id = sep_id
        self.pad_id = pad_id

        if wordpiece is not None:
            self._wordpiece = wordpiece
        elif vocab_path is not None:
            self._wordpiece = self._load_vocab(vocab_path, lowercase)
        else:
            raise ValueError("Either vocab_path or wordpiece must be provided")

    @staticmethod
    def _load_vocab(vocab_path: str, lowercase: bool):
        try:
            from transformers import BertTokenizer
        except ImportError as e:
            raise ImportError(
                "transformers is required for WordPieceTokenizer. "
                "Install with: pip install pocket-rag[embeddings-transformers]"
            ) from e

        logger.info(f"Loading WordPiece vocabulary: {vocab_path}")
        return BertTokenizer(vocab_file=vocab_path, do_lower_case=lowercase)

    def clamp(self, token_id: int) -> int:
        if token_id < 0 or token_id >= self.vocab_limit:
            return self.unk_id
        return token_id

    def frame(self, raw_ids: List[int]) -> List[int]:
        """Clamp, truncate and pad raw content ids into a full sequence."""
        content = [self.clamp(token_id) for token_id in raw_ids][: self.max_length - 2]

        framed = [self.cls_id] + content + [self.sep_id]
        framed.extend([self.pad_id] * (self.max_length - len(framed)))
        return framed

    def tokenize(self, text: str) -> List[int]:
        """
        Convert text into a framed id sequence of length ``max_length``.

        Never raises: a WordPiece failure yields ``[CLS, SEP, PAD...]``.
        """
        try:
            tokens = self._wordpiece.tokenize(text)
            raw_ids = list(self._wordpiece.convert_tokens_to_ids(tokens))
        except Exception as e:
            logger.error(f"WordPiece tokenization failed: {e}")
            raw_ids = []

        ids = self.frame(raw_ids)
        logger.debug(f"Tokenized to {min(len(raw_ids), self.max_length - 2) + 2}/{self.max_length} ids")
        return ids

    def attention_mask(self, ids: List[int]) -> List[int]:
        """1 for real positions, 0 for padding after [SEP]."""
        try:
            last = len(ids) - 1 - ids[::-1].index(self.sep_id)
        except ValueError:
            return [0 if token_id == self.pad_id else 1 for token_id in ids]
        return [1] * (last + 1) + [0] * (len(ids) - last - 1)
